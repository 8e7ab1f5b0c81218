import logging
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from database import get_db
from idcards import extract_participant_id
from models import AdminUser, Participant
from schemas import (
    BulkWriteResult,
    CheckInOverview,
    CheckInRequest,
    CheckInStats,
    CheckOutRequest,
    CheckStatus,
    ParticipantCreate,
    ParticipantResponse,
    ParticipantUpdate,
    TempCheckoutAlert,
    WifiCredentials,
)
from security import require_admin
from time_utils import ensure_utc, utc_now

router = APIRouter()
logger = logging.getLogger(__name__)

TEMP_CHECKOUT_ALERT_MINUTES = int(os.environ.get("TEMP_CHECKOUT_ALERT_MINUTES", 10))

CHECK_FIELDS = ("college_check_in", "lab_check_in", "college_check_out", "temp_lab_check_out")
TEXT_FIELDS = ("name", "email", "phone", "role", "team_name", "institute", "lab_allotted")


def _check_status(participant: Participant, attr: str) -> CheckStatus:
    return CheckStatus(
        status=bool(getattr(participant, attr)),
        time=ensure_utc(getattr(participant, f"{attr}_time")),
    )


def participant_to_response(participant: Participant) -> ParticipantResponse:
    wifi = None
    if participant.wifi_ssid or participant.wifi_password:
        wifi = WifiCredentials(ssid=participant.wifi_ssid, password=participant.wifi_password)
    return ParticipantResponse(
        participant_id=participant.participant_id,
        name=participant.name,
        email=participant.email,
        phone=participant.phone,
        role=participant.role,
        team_name=participant.team_name,
        institute=participant.institute,
        lab_allotted=participant.lab_allotted,
        wifi_credentials=wifi,
        college_check_in=_check_status(participant, "college_check_in"),
        lab_check_in=_check_status(participant, "lab_check_in"),
        college_check_out=_check_status(participant, "college_check_out"),
        temp_lab_check_out=_check_status(participant, "temp_lab_check_out"),
        created_at=ensure_utc(participant.created_at),
        updated_at=ensure_utc(participant.updated_at),
    )


def get_participant_or_404(db: Session, participant_id: str) -> Participant:
    participant = db.query(Participant).filter(Participant.participant_id == participant_id).first()
    if not participant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Participant not found")
    return participant


def _apply_check(participant: Participant, attr: str, value: CheckStatus) -> None:
    setattr(participant, attr, value.status)
    if value.status:
        setattr(participant, f"{attr}_time", value.time or utc_now())
    else:
        setattr(participant, f"{attr}_time", None)


def _set_flag(participant: Participant, attr: str, flag: bool) -> None:
    _apply_check(participant, attr, CheckStatus(status=flag))


@router.get("/participants", response_model=List[ParticipantResponse])
def list_participants(
    search: Optional[str] = Query(None),
    admin: AdminUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(Participant)
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(or_(
            func.lower(Participant.name).like(pattern),
            func.lower(Participant.email).like(pattern),
            func.lower(Participant.participant_id).like(pattern),
            func.lower(Participant.team_name).like(pattern),
        ))
    participants = query.order_by(Participant.created_at.desc(), Participant.id.desc()).all()
    return [participant_to_response(p) for p in participants]


@router.get("/participants/scan/lookup", response_model=ParticipantResponse)
def lookup_scanned_participant(
    code: str = Query(..., min_length=1),
    admin: AdminUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    participant_id = extract_participant_id(code)
    if not participant_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid QR code")
    return participant_to_response(get_participant_or_404(db, participant_id))


@router.get("/participants/checkin/overview", response_model=CheckInOverview)
def checkin_overview(admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    participants = db.query(Participant).order_by(Participant.created_at.desc(), Participant.id.desc()).all()
    now = utc_now()
    alerts: List[TempCheckoutAlert] = []
    college_only = in_lab = temp_out = checked_out = not_arrived = 0

    for p in participants:
        if p.college_check_in and not p.lab_check_in:
            college_only += 1
        if p.lab_check_in and not p.college_check_out and not p.temp_lab_check_out:
            in_lab += 1
        if p.temp_lab_check_out and not p.college_check_out:
            temp_out += 1
            since = ensure_utc(p.temp_lab_check_out_time)
            if since is not None:
                minutes_away = int((now - since).total_seconds() // 60)
                if minutes_away > TEMP_CHECKOUT_ALERT_MINUTES:
                    alerts.append(TempCheckoutAlert(
                        participant_id=p.participant_id,
                        name=p.name,
                        team_name=p.team_name,
                        lab_allotted=p.lab_allotted,
                        since=since,
                        minutes_away=minutes_away,
                    ))
        if p.college_check_out:
            checked_out += 1
        if not p.college_check_in:
            not_arrived += 1

    alerts.sort(key=lambda alert: alert.minutes_away, reverse=True)
    stats = CheckInStats(
        total=len(participants),
        college_only=college_only,
        in_lab=in_lab,
        temp_out=temp_out,
        alerts=len(alerts),
        checked_out=checked_out,
        not_arrived=not_arrived,
    )
    return CheckInOverview(stats=stats, alerts=alerts)


@router.get("/participants/{participant_id}", response_model=ParticipantResponse)
def get_participant(participant_id: str, admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    return participant_to_response(get_participant_or_404(db, participant_id))


@router.post("/participants", response_model=BulkWriteResult, status_code=status.HTTP_201_CREATED)
def create_participants(
    payload: List[ParticipantCreate],
    admin: AdminUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not payload:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one participant is required")

    seen = set()
    duplicates = set()
    for item in payload:
        if item.participant_id in seen:
            duplicates.add(item.participant_id)
        seen.add(item.participant_id)
    existing = db.query(Participant.participant_id).filter(Participant.participant_id.in_(list(seen))).all()
    duplicates.update(row.participant_id for row in existing)
    if duplicates:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Duplicate participant IDs: {', '.join(sorted(duplicates))}",
        )

    now = utc_now()
    for item in payload:
        participant = Participant(
            participant_id=item.participant_id,
            name=item.name,
            email=item.email,
            phone=item.phone,
            role=item.role,
            team_name=item.team_name,
            institute=item.institute,
            lab_allotted=item.lab_allotted,
            wifi_ssid=item.wifi_credentials.ssid if item.wifi_credentials else None,
            wifi_password=item.wifi_credentials.password if item.wifi_credentials else None,
            created_at=now,
            updated_at=now,
        )
        _apply_check(participant, "college_check_in", item.college_check_in or CheckStatus())
        _apply_check(participant, "lab_check_in", item.lab_check_in or CheckStatus())
        db.add(participant)
    db.commit()
    logger.info("Admin %s created %s participants", admin.email, len(payload))
    return BulkWriteResult(count=len(payload))


@router.put("/participants/{participant_id}", response_model=ParticipantResponse)
def update_participant(
    participant_id: str,
    payload: ParticipantUpdate,
    admin: AdminUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    participant = get_participant_or_404(db, participant_id)
    updates = payload.model_dump(exclude_unset=True)

    for field in TEXT_FIELDS:
        if field in updates:
            if field in ("name", "email") and updates[field] is None:
                continue
            setattr(participant, field, updates[field])
    if "wifi_credentials" in updates:
        wifi = payload.wifi_credentials
        participant.wifi_ssid = wifi.ssid if wifi else None
        participant.wifi_password = wifi.password if wifi else None
    for field in CHECK_FIELDS:
        value = getattr(payload, field)
        if field in updates and value is not None:
            _apply_check(participant, field, value)

    participant.updated_at = utc_now()
    db.commit()
    db.refresh(participant)
    return participant_to_response(participant)


@router.delete("/participants/{participant_id}")
def delete_participant(participant_id: str, admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    participant = get_participant_or_404(db, participant_id)
    db.delete(participant)
    db.commit()
    logger.info("Admin %s deleted participant %s", admin.email, participant_id)
    return {"success": True}


@router.delete("/participants", response_model=BulkWriteResult)
def delete_all_participants(admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    count = db.query(Participant).delete(synchronize_session=False)
    db.commit()
    logger.warning("Admin %s deleted all %s participants", admin.email, count)
    return BulkWriteResult(count=count)


@router.post("/participants/{participant_id}/check-in", response_model=ParticipantResponse)
def check_in_participant(
    participant_id: str,
    payload: CheckInRequest,
    admin: AdminUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    participant = get_participant_or_404(db, participant_id)
    if payload.type == "college":
        _set_flag(participant, "college_check_in", payload.status)
    else:
        _set_flag(participant, "lab_check_in", payload.status)
        if payload.status:
            _set_flag(participant, "temp_lab_check_out", False)
    participant.updated_at = utc_now()
    db.commit()
    db.refresh(participant)
    logger.info("%s check-in for %s set to %s by %s", payload.type, participant_id, payload.status, admin.email)
    return participant_to_response(participant)


@router.post("/participants/{participant_id}/check-out", response_model=ParticipantResponse)
def check_out_participant(
    participant_id: str,
    payload: CheckOutRequest,
    admin: AdminUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    participant = get_participant_or_404(db, participant_id)
    attr = "college_check_out" if payload.type == "college" else "temp_lab_check_out"
    _set_flag(participant, attr, payload.status)
    participant.updated_at = utc_now()
    db.commit()
    db.refresh(participant)
    logger.info("%s check-out for %s set to %s by %s", payload.type, participant_id, payload.status, admin.email)
    return participant_to_response(participant)
