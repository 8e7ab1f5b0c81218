import io
import logging
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from backup import export_participants, get_recent_backup_logs, run_logged_backup, update_backup_frequency
from csv_io import parse_participant_import, participants_to_csv, participants_to_xlsx
from database import get_db
from models import AdminUser, Participant
from schemas import (
    BackupFrequencyRequest,
    BackupFrequencyResult,
    BackupLogResponse,
    BackupRunResponse,
    DatabaseStats,
    ImportResult,
)
from security import require_admin, require_db_password
from time_utils import utc_now

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_IMPORT_BYTES = 10 * 1024 * 1024


@router.get("/database/export")
def export_database(
    format: str = Query("csv", pattern="^(csv|xlsx)$"),
    admin: AdminUser = Depends(require_admin),
    _: bool = Depends(require_db_password),
    db: Session = Depends(get_db),
):
    participants = export_participants(db)
    stamp = utc_now().strftime("%Y-%m-%d")
    if format == "xlsx":
        content = participants_to_xlsx(participants)
        return StreamingResponse(
            io.BytesIO(content),
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f"attachment; filename=participants-{stamp}.xlsx"},
        )
    return StreamingResponse(
        iter([participants_to_csv(participants)]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=participants-{stamp}.csv"},
    )


@router.post("/database/import", response_model=ImportResult)
async def import_database(
    file: UploadFile = File(...),
    admin: AdminUser = Depends(require_admin),
    _: bool = Depends(require_db_password),
    db: Session = Depends(get_db),
):
    raw = await file.read()
    if len(raw) > MAX_IMPORT_BYTES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File too large")
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be UTF-8 encoded CSV")

    records, errors = parse_participant_import(text)
    now = utc_now()
    upserted = 0
    modified = 0
    # Rows added earlier in this file are not flushed yet, so repeats are matched here
    pending = {}
    for record in records:
        created_at = record.pop("created_at", None)
        existing = pending.get(record["participant_id"])
        if existing is None:
            existing = db.query(Participant).filter(Participant.participant_id == record["participant_id"]).first()
        if existing is None:
            participant = Participant(**record, created_at=created_at or now, updated_at=now)
            db.add(participant)
            pending[participant.participant_id] = participant
            upserted += 1
        else:
            for field, value in record.items():
                setattr(existing, field, value)
            existing.updated_at = now
            modified += 1
    db.commit()
    logger.info("Admin %s imported participants: %s new, %s updated, %s errors", admin.email, upserted, modified, len(errors))
    return ImportResult(upserted=upserted, modified=modified, errors=errors)


@router.get("/database/stats", response_model=DatabaseStats)
def database_stats(
    admin: AdminUser = Depends(require_admin),
    _: bool = Depends(require_db_password),
    db: Session = Depends(get_db),
):
    def count_where(*criteria) -> int:
        return db.query(func.count(Participant.id)).filter(*criteria).scalar() or 0

    return DatabaseStats(
        total=count_where(),
        college_checked_in=count_where(Participant.college_check_in.is_(True)),
        lab_checked_in=count_where(Participant.lab_check_in.is_(True)),
        checked_out=count_where(Participant.college_check_out.is_(True)),
    )


@router.post("/database/backup", response_model=BackupRunResponse)
def manual_backup(
    admin: AdminUser = Depends(require_admin),
    _: bool = Depends(require_db_password),
    db: Session = Depends(get_db),
):
    try:
        result = run_logged_backup(db, source="manual")
    except Exception as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Backup failed: {exc}")
    return BackupRunResponse(success=True, **result)


@router.put("/database/backup-frequency", response_model=BackupFrequencyResult)
def set_backup_frequency(
    payload: BackupFrequencyRequest,
    admin: AdminUser = Depends(require_admin),
    _: bool = Depends(require_db_password),
):
    result = update_backup_frequency(payload.frequency)
    logger.info("Admin %s set backup frequency to %s (ok=%s)", admin.email, payload.frequency, result["ok"])
    return BackupFrequencyResult(**result)


@router.get("/database/backup-logs", response_model=List[BackupLogResponse])
def backup_logs(
    hours: float = Query(1, gt=0, le=24 * 30),
    admin: AdminUser = Depends(require_admin),
    _: bool = Depends(require_db_password),
    db: Session = Depends(get_db),
):
    return get_recent_backup_logs(db, hours=hours)
