from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from datetime import timedelta

from bot_config import get_bot_status, mask_database_url, query_logs, summarize_logs
from models import BotConfigHistory, BotHeartbeat, BotLog
from time_utils import utc_now


def test_config_missing_returns_hint(admin_client):
    response = admin_client.get("/api/bot-config")
    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error": "No config found",
        "hint": "Use POST /api/bot-config to seed your initial config.",
    }


def test_seed_then_conflict(admin_client):
    response = admin_client.post("/api/bot-config", json={"event": "Hackoverflow", "tracks": ["ai", "web"]})
    assert response.status_code == 201

    body = admin_client.get("/api/bot-config").json()
    assert body["data"] == {"event": "Hackoverflow", "tracks": ["ai", "web"]}
    assert body["meta"]["version"] == 1
    assert body["meta"]["updated_by"] == "admin@hackoverflow.com"

    response = admin_client.post("/api/bot-config", json={"event": "again"})
    assert response.status_code == 409
    assert response.json()["error"] == "Config already exists. Use PUT to update."


def test_put_snapshots_history_and_bumps_version(admin_client, db_session):
    admin_client.post("/api/bot-config", json={"event": "v1"})
    response = admin_client.put("/api/bot-config", json={"event": "v2"})
    assert response.json() == {"success": True, "message": "Bot configuration updated", "version": 2}
    admin_client.put("/api/bot-config", json={"event": "v3"})

    history = admin_client.get("/api/bot-config/history").json()
    assert [h["version"] for h in history] == [2, 1]
    assert history[1]["data"] == {"event": "v1"}
    assert history[0]["snapshot_of"] == "hackathon-data"
    assert all(h["saved_at"].endswith("Z") for h in history)
    assert db_session.query(BotConfigHistory).count() == 2
    assert admin_client.get("/api/bot-config").json()["meta"]["version"] == 3


def test_put_rejects_non_object(admin_client):
    response = admin_client.put("/api/bot-config", json=["not", "an", "object"])
    assert response.status_code == 400
    assert response.json()["error"] == "Payload must be a JSON object"


def test_status_from_heartbeat(db_session):
    assert get_bot_status(db_session)["online"] is False

    now = utc_now()
    db_session.add(BotHeartbeat(key="kernel-bot", last_seen=now - timedelta(seconds=30), tag="Kernel#0001", ping=42))
    db_session.commit()
    status = get_bot_status(db_session, now=now)
    assert status["online"] is True
    assert 29_000 <= status["stale_ms"] <= 31_000

    status = get_bot_status(db_session, now=now + timedelta(seconds=60))
    assert status["online"] is False


def test_logs_filtering_and_summary(db_session):
    now = utc_now()
    db_session.add_all([
        BotLog(type="ai_mention", success=True, duration_ms=100, timestamp=now - timedelta(minutes=3)),
        BotLog(type="ai_mention", success=False, duration_ms=301, timestamp=now - timedelta(minutes=2)),
        BotLog(type="error", success=False, duration_ms=None, timestamp=now - timedelta(minutes=1)),
    ])
    db_session.commit()

    assert [log.type for log in query_logs(db_session)] == ["error", "ai_mention", "ai_mention"]
    assert len(query_logs(db_session, log_type="ai_mention")) == 2
    assert len(query_logs(db_session, log_type="all", limit=1)) == 1
    assert len(query_logs(db_session, since=now - timedelta(minutes=2, seconds=30))) == 2

    summary = summarize_logs(db_session)
    assert summary["ai_mention"] == {"total": 2, "errors": 1, "avg_ms": 200}
    assert summary["error"]["errors"] == 1


def test_logs_route_caps_limit(admin_client, db_session):
    now = utc_now()
    db_session.add_all([BotLog(type="scheduled", success=True, timestamp=now - timedelta(seconds=i)) for i in range(205)])
    db_session.commit()
    body = admin_client.get("/api/bot-config/logs", params={"limit": 500}).json()
    assert len(body["logs"]) == 200
    assert body["summary"]["scheduled"]["total"] == 205


def test_scheduled_message_validation(admin_client):
    cases = [
        ({}, "Name is required"),
        ({"name": "Hi"}, "Channel ID is required"),
        ({"name": "Hi", "channel_id": "123"}, "Message content is required"),
        ({"name": "Hi", "channel_id": "123", "content": "x", "schedule_type": "recurring"},
         "Cron expression is required for recurring messages"),
        ({"name": "Hi", "channel_id": "123", "content": "x"}, "Send time is required for one-time messages"),
    ]
    for payload, message in cases:
        response = admin_client.post("/api/bot-config/messages", json=payload)
        assert response.status_code == 400
        assert response.json()["error"] == message


def test_scheduled_message_lifecycle(admin_client):
    response = admin_client.post(
        "/api/bot-config/messages",
        json={
            "name": "Daily standup",
            "channel_id": "998877",
            "message_format": "embed",
            "embed_title": "Standup",
            "schedule_type": "recurring",
            "cron_expression": "0 9 * * *",
            "send_at": "2026-03-05T09:00:00Z",
        },
    )
    assert response.status_code == 201
    message = response.json()
    assert message["cron_expression"] == "0 9 * * *"
    assert message["send_at"] is None
    assert message["active"] is True
    assert message["embed_color"] == "#FF6B35"
    assert message["created_at"].endswith("Z")

    message_id = message["id"]
    assert admin_client.patch(f"/api/bot-config/messages/{message_id}", json={"active": False}).json()["active"] is False
    assert len(admin_client.get("/api/bot-config/messages").json()) == 1
    assert admin_client.delete(f"/api/bot-config/messages/{message_id}").json() == {"success": True}
    assert admin_client.delete(f"/api/bot-config/messages/{message_id}").status_code == 404


def test_debug_masks_credentials(admin_client):
    assert mask_database_url("postgresql://bot:hunter2@db:5432/ho") == "postgresql://bot:****@db:5432/ho"
    body = admin_client.get("/api/bot-config/debug").json()
    assert body["success"] is True
    assert body["counts"]["bot_logs"] == 0
    assert body["latest_heartbeat"] is None


def test_one_time_message_send_at_is_utc(admin_client):
    response = admin_client.post(
        "/api/bot-config/messages",
        json={"name": "Kickoff", "channel_id": "42", "content": "Go!", "send_at": "2026-03-05T09:00:00+05:30"},
    )
    assert response.status_code == 201
    assert response.json()["send_at"] == "2026-03-05T03:30:00Z"
    listed = admin_client.get("/api/bot-config/messages").json()
    assert listed[0]["send_at"] == "2026-03-05T03:30:00Z"
