from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from datetime import timedelta

import pytest

from auth import SESSION_COOKIE_NAME, create_session_token, get_password_hash, verify_password
from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, DB_HEADERS


def test_password_hash_roundtrip_and_malformed_hash():
    hashed = get_password_hash("s3cret")
    assert verify_password("s3cret", hashed)
    assert not verify_password("wrong", hashed)
    assert verify_password("s3cret", "not-a-bcrypt-hash") is False


def test_login_sets_cookie_and_normalizes_email(client, admin_user):
    response = client.post("/api/auth/login", json={"email": "  ADMIN@HackOverflow.com ", "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["user"]["email"] == ADMIN_EMAIL
    assert SESSION_COOKIE_NAME in response.cookies
    set_cookie = response.headers["set-cookie"].lower()
    assert "httponly" in set_cookie
    assert "samesite=lax" in set_cookie


def test_login_rejects_bad_credentials(client, admin_user):
    response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": "nope"})
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Invalid credentials"}

    response = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "nope"})
    assert response.status_code == 401


def test_login_rejects_deactivated_account(client, admin_user, db_session):
    admin_user.is_active = False
    db_session.commit()
    response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 403
    assert response.json()["error"] == "Account is deactivated"


def test_session_and_logout(admin_client):
    response = admin_client.get("/api/auth/session")
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "admin"

    assert admin_client.post("/api/auth/logout").json() == {"success": True}
    admin_client.cookies.clear()
    assert admin_client.get("/api/auth/session").status_code == 401


def test_expired_or_mismatched_token_is_unauthorized(client, admin_user):
    expired = create_session_token(admin_user, expires_delta=timedelta(seconds=-5))
    client.cookies.set(SESSION_COOKIE_NAME, expired)
    assert client.get("/api/auth/session").status_code == 401

    admin_user.email = "renamed@example.com"
    token = create_session_token(admin_user)
    admin_user.email = ADMIN_EMAIL
    client.cookies.set(SESSION_COOKIE_NAME, token)
    assert client.get("/api/auth/session").status_code == 401


PROTECTED_ROUTES = [
    ("get", "/api/participants"),
    ("get", "/api/participants/PART-0001"),
    ("post", "/api/participants/PART-0001/check-in"),
    ("get", "/api/participants/scan/lookup"),
    ("get", "/api/participants/checkin/overview"),
    ("delete", "/api/participants"),
    ("get", "/api/sponsors"),
    ("get", "/api/sponsors/SPON-01"),
    ("post", "/api/sponsors"),
    ("put", "/api/sponsors/SPON-01"),
    ("delete", "/api/sponsors"),
    ("post", "/api/mailer/send"),
    ("get", "/api/mailer/templates"),
    ("post", "/api/mailer/preview"),
    ("post", "/api/mailer/recipients/parse"),
    ("get", "/api/mailer/test-connection"),
    ("post", "/api/id-cards/parse"),
    ("post", "/api/id-cards/pdf"),
    ("post", "/api/id-cards/bulk"),
    ("get", "/api/id-cards/participants/PART-0001"),
    ("get", "/api/id-cards/qr/PART-0001"),
    ("get", "/api/id-cards/sample-csv"),
    ("get", "/api/bot-config"),
    ("put", "/api/bot-config"),
    ("post", "/api/bot-config"),
    ("get", "/api/bot-config/history"),
    ("get", "/api/bot-config/status"),
    ("get", "/api/bot-config/logs"),
    ("get", "/api/bot-config/messages"),
    ("post", "/api/bot-config/messages"),
    ("patch", "/api/bot-config/messages/1"),
    ("delete", "/api/bot-config/messages/1"),
    ("get", "/api/bot-config/debug"),
    ("get", "/api/database/export"),
    ("post", "/api/database/import"),
    ("get", "/api/database/stats"),
    ("post", "/api/database/backup"),
    ("put", "/api/database/backup-frequency"),
    ("get", "/api/database/backup-logs"),
    ("get", "/api/auth/verify-db-password"),
    ("post", "/api/cron/backup"),
    ("post", "/api/cron/backup-report"),
]


@pytest.mark.parametrize("method,path", PROTECTED_ROUTES)
def test_protected_routes_require_session(client, method, path):
    response = client.request(method.upper(), path, headers=DB_HEADERS)
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Unauthorized"}


def test_protected_route_requires_session(client):
    response = client.get("/api/participants")
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Unauthorized"}


def test_verify_db_password(admin_client):
    assert admin_client.get("/api/auth/verify-db-password", headers=DB_HEADERS).status_code == 200
    response = admin_client.get("/api/auth/verify-db-password", headers={"X-DB-PASSWORD": "wrong"})
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid database password"


def test_validation_errors_use_envelope(client):
    response = client.post("/api/auth/login", json={"email": "not-an-email", "password": "x"})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    assert body["details"]


def test_security_headers_present(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["Cache-Control"].startswith("no-store")
