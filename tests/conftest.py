from pathlib import Path
import os
import sys

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

os.environ.setdefault("JWT_SECRET_KEY", "test-only-secret-3f9c1a7e5b2d4c8a9e6f0b1d2c3a4e5f")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CRON_SECRET"] = "cron-test-secret"
os.environ["DB_PAGE_PASSWORD"] = "db-test-password"
os.environ["ID_CARD_TEMPLATE"] = ""
os.environ["ID_CARD_FONT"] = ""
for name in ("EMAIL_REPORT_TO", "EMAIL_USER", "COOLIFY_BASE_URL", "COOLIFY_API_TOKEN", "COOLIFY_BACKUP_TASK_UUID"):
    os.environ.pop(name, None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import get_password_hash
from database import Base, get_db
from models import AdminUser

ADMIN_EMAIL = "admin@hackoverflow.com"
ADMIN_PASSWORD = "correct-horse-battery-staple"
DB_HEADERS = {"X-DB-PASSWORD": "db-test-password"}
CRON_HEADERS = {"x-cron-secret": "cron-test-secret"}


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def client(db_session):
    from server import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app, raise_server_exceptions=False) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def admin_user(db_session):
    user = AdminUser(
        email=ADMIN_EMAIL,
        name="Admin User",
        hashed_password=get_password_hash(ADMIN_PASSWORD),
        role="admin",
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def admin_client(client, admin_user):
    response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return client
