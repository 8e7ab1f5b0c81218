from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from datetime import timedelta

from models import Participant
from time_utils import utc_now


def _create(client, *items):
    payload = [
        {"participant_id": pid, "name": name, "email": f"{pid.lower()}@example.com", "team_name": team}
        for pid, name, team in items
    ]
    return client.post("/api/participants", json=payload)


def test_bulk_create_and_list(admin_client):
    response = _create(admin_client, ("PART-0001", "Ada Lovelace", "Engines"), ("PART-0002", "Alan Turing", "Bombe"))
    assert response.status_code == 201
    assert response.json() == {"success": True, "count": 2}

    listed = admin_client.get("/api/participants").json()
    assert {p["participant_id"] for p in listed} == {"PART-0001", "PART-0002"}
    first = listed[0]
    assert first["college_check_in"] == {"status": False, "time": None}
    assert first["lab_check_in"]["status"] is False


def test_search_is_case_insensitive(admin_client):
    _create(admin_client, ("PART-0001", "Ada Lovelace", "Engines"), ("PART-0002", "Alan Turing", "Bombe"))
    results = admin_client.get("/api/participants", params={"search": "bOmBe"}).json()
    assert [p["participant_id"] for p in results] == ["PART-0002"]
    results = admin_client.get("/api/participants", params={"search": "part-0001"}).json()
    assert [p["name"] for p in results] == ["Ada Lovelace"]


def test_duplicate_ids_conflict(admin_client):
    response = _create(admin_client, ("PART-0001", "A", None), ("PART-0001", "B", None))
    assert response.status_code == 409

    _create(admin_client, ("PART-0003", "C", None))
    response = _create(admin_client, ("PART-0003", "C again", None))
    assert response.status_code == 409
    assert "PART-0003" in response.json()["error"]


def test_get_update_delete(admin_client):
    _create(admin_client, ("PART-0001", "Ada", None))
    assert admin_client.get("/api/participants/PART-0404").status_code == 404
    assert admin_client.get("/api/participants/PART-0404").json()["error"] == "Participant not found"

    response = admin_client.put(
        "/api/participants/PART-0001",
        json={"lab_allotted": "Lab 3", "wifi_credentials": {"ssid": "HO-3", "password": "pw"}},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["lab_allotted"] == "Lab 3"
    assert body["wifi_credentials"] == {"ssid": "HO-3", "password": "pw"}

    assert admin_client.delete("/api/participants/PART-0001").json() == {"success": True}
    assert admin_client.delete("/api/participants/PART-0001").status_code == 404


def test_delete_all(admin_client):
    _create(admin_client, ("PART-0001", "A", None), ("PART-0002", "B", None))
    assert admin_client.delete("/api/participants").json() == {"success": True, "count": 2}
    assert admin_client.get("/api/participants").json() == []


def test_check_in_and_out_set_and_clear_times(admin_client):
    _create(admin_client, ("PART-0001", "Ada", None))

    body = admin_client.post("/api/participants/PART-0001/check-in", json={"type": "college", "status": True}).json()
    assert body["college_check_in"]["status"] is True
    assert body["college_check_in"]["time"] is not None

    body = admin_client.post("/api/participants/PART-0001/check-in", json={"type": "college", "status": False}).json()
    assert body["college_check_in"] == {"status": False, "time": None}

    body = admin_client.post("/api/participants/PART-0001/check-out", json={"type": "temp_lab", "status": True}).json()
    assert body["temp_lab_check_out"]["status"] is True

    body = admin_client.post("/api/participants/PART-0001/check-in", json={"type": "lab", "status": True}).json()
    assert body["lab_check_in"]["status"] is True
    assert body["temp_lab_check_out"] == {"status": False, "time": None}


def test_check_in_rejects_unknown_type(admin_client):
    _create(admin_client, ("PART-0001", "Ada", None))
    response = admin_client.post("/api/participants/PART-0001/check-in", json={"type": "canteen", "status": True})
    assert response.status_code == 400


def test_scan_lookup_accepts_url_or_raw_id(admin_client):
    _create(admin_client, ("PART-0007", "Grace Hopper", None))
    url = "https://checkin.hackoverflow4.tech/checkin/PART-0007/extra"
    assert admin_client.get("/api/participants/scan/lookup", params={"code": url}).json()["name"] == "Grace Hopper"
    assert admin_client.get("/api/participants/scan/lookup", params={"code": "  PART-0007 "}).status_code == 200
    assert admin_client.get("/api/participants/scan/lookup", params={"code": "PART-9999"}).status_code == 404


def test_checkin_overview_counts_and_alerts(admin_client, db_session):
    now = utc_now()
    db_session.add_all([
        Participant(participant_id="P1", name="Not arrived", email="p1@example.com"),
        Participant(participant_id="P2", name="College only", email="p2@example.com",
                    college_check_in=True, college_check_in_time=now),
        Participant(participant_id="P3", name="In lab", email="p3@example.com",
                    college_check_in=True, lab_check_in=True),
        Participant(participant_id="P4", name="Long break", email="p4@example.com",
                    college_check_in=True, lab_check_in=True,
                    temp_lab_check_out=True, temp_lab_check_out_time=now - timedelta(minutes=25)),
        Participant(participant_id="P5", name="Short break", email="p5@example.com",
                    college_check_in=True, lab_check_in=True,
                    temp_lab_check_out=True, temp_lab_check_out_time=now - timedelta(minutes=2)),
        Participant(participant_id="P6", name="Gone home", email="p6@example.com",
                    college_check_in=True, lab_check_in=True, college_check_out=True),
    ])
    db_session.commit()

    body = admin_client.get("/api/participants/checkin/overview").json()
    assert body["stats"] == {
        "total": 6,
        "college_only": 1,
        "in_lab": 1,
        "temp_out": 2,
        "alerts": 1,
        "checked_out": 1,
        "not_arrived": 1,
    }
    assert len(body["alerts"]) == 1
    alert = body["alerts"][0]
    assert alert["participant_id"] == "P4"
    assert 24 <= alert["minutes_away"] <= 26
