from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

import email_bulk
from email_bulk import derive_text_from_html, is_valid_email, render_email_template, send_bulk_emails
from email_templates import STARTER_TEMPLATES, render_starter_template, wrap_in_template
from routers import mailer as mailer_router


def test_is_valid_email():
    assert is_valid_email("ada@example.com")
    assert not is_valid_email("ada@example")
    assert not is_valid_email("ada @example.com")
    assert not is_valid_email("")


def test_render_template_escapes_and_defaults():
    html = render_email_template("<p>Hi {{ name }} from {{company}} {{unknown}}</p>", {"company": "<b>Co</b>"}, html_mode=True)
    assert html == "<p>Hi there from &lt;b&gt;Co&lt;/b&gt; {{unknown}}</p>"
    text = render_email_template("Hi {{name}}", {"name": "Ada"}, html_mode=False)
    assert text == "Hi Ada"


def test_derive_text_from_html():
    assert derive_text_from_html("<style>p{}</style><p>Hello</p><p>World &amp; co</p>") == "Hello\nWorld & co"


def test_wrapper_and_starters_render():
    wrapped = wrap_in_template("<p>Body text</p>")
    assert "<p>Body text</p>" in wrapped
    assert wrapped.lower().startswith("<!doctype html")
    for key in STARTER_TEMPLATES:
        assert render_starter_template(key)
    assert "{{name}}" in render_starter_template("welcome")


def test_bulk_send_aborts_when_smtp_unreachable(monkeypatch):
    monkeypatch.setattr(email_bulk, "check_connection", lambda: False)
    result = send_bulk_emails([{"email": "a@example.com"}, {"email": "b@example.com"}], "Hi", "<p>x</p>")
    assert result == {
        "success": False,
        "sent": 0,
        "failed": 2,
        "errors": ["Failed to connect to email server. Check your email configuration."],
    }


def test_bulk_send_personalizes_and_collects_failures(monkeypatch):
    sent = []

    def fake_send(to_email, subject, html, text=None, sender_name=None):
        if to_email == "bad@example.com":
            raise RuntimeError("mailbox full")
        sent.append((to_email, subject, html, text))

    monkeypatch.setattr(email_bulk, "check_connection", lambda: True)
    monkeypatch.setattr(email_bulk, "send_email", fake_send)
    recipients = [
        {"name": "Ada", "email": "ada@example.com"},
        {"name": "Bad", "email": "bad@example.com"},
    ]
    result = send_bulk_emails(recipients, "Hello {{name}}", "<p>Hi {{name}}</p>")
    assert result["success"] is True
    assert result["sent"] == 1
    assert result["failed"] == 1
    assert result["errors"] == ["Failed to send to bad@example.com: mailbox full"]
    to_email, subject, html, text = sent[0]
    assert subject == "Hello Ada"
    assert "<p>Hi Ada</p>" in html
    assert text == "Hi Ada"


def test_send_route_validation(admin_client):
    payload = {"subject": "", "content": "<p>x</p>", "recipients": [{"email": "a@example.com"}]}
    assert admin_client.post("/api/mailer/send", json=payload).json()["error"] == "Subject is required"

    payload = {"subject": "Hi", "content": " ", "recipients": [{"email": "a@example.com"}]}
    assert admin_client.post("/api/mailer/send", json=payload).json()["error"] == "Email content is required"

    payload = {"subject": "Hi", "content": "x", "recipients": []}
    assert admin_client.post("/api/mailer/send", json=payload).json()["error"] == "At least one recipient is required"

    payload = {"subject": "Hi", "content": "x", "recipients": [{"email": "nope"}, {"email": "also@bad"}]}
    response = admin_client.post("/api/mailer/send", json=payload)
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid email addresses: nope, also@bad"


def test_send_route_success_message(admin_client, monkeypatch):
    monkeypatch.setattr(
        mailer_router,
        "send_bulk_emails",
        lambda recipients, subject, content: {"success": True, "sent": 2, "failed": 0, "errors": []},
    )
    payload = {"subject": "Hi", "content": "x", "recipients": [{"email": "a@example.com"}, {"email": "b@example.com"}]}
    body = admin_client.post("/api/mailer/send", json=payload).json()
    assert body["message"] == "Successfully sent 2 emails to 2 recipients"


def test_templates_preview_and_parse(admin_client):
    templates = admin_client.get("/api/mailer/templates").json()
    assert {t["key"] for t in templates} == set(STARTER_TEMPLATES)

    preview = admin_client.post(
        "/api/mailer/preview",
        json={"content": "<p>Hi {{name}}</p>", "recipient": {"name": "Grace", "email": "g@example.com"}},
    ).json()
    assert "<p>Hi Grace</p>" in preview["html"]

    csv_text = "Name,Email,Role\nAda,ada@example.com,Dev\n,anon@example.com,\nNo Email,,Ops\n"
    parsed = admin_client.post(
        "/api/mailer/recipients/parse",
        files={"file": ("recipients.csv", csv_text.encode("utf-8"), "text/csv")},
    ).json()
    assert [r["email"] for r in parsed] == ["ada@example.com", "anon@example.com"]
    assert parsed[1]["name"] == "N/A"


def test_connection_route(admin_client, monkeypatch):
    monkeypatch.setattr(mailer_router, "check_connection", lambda: False)
    assert admin_client.get("/api/mailer/test-connection").json() == {"success": False}
