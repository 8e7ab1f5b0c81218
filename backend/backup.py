import logging
import os
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import requests
from sqlalchemy.orm import Session

from bot_config import get_config
from csv_io import participants_to_csv
from email_templates import REPORT_SENDER_NAME, build_backup_report_email
from emailer import send_email
from models import BackupLog, Participant
from storage import upload_backup_file
from time_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

BACKUP_LOG_RETENTION = 500
BACKUP_FILENAME_PREFIX = "hackoverflow-backup"
COOLIFY_TIMEOUT_SECONDS = 15

FREQUENCY_CRON = {
    "5min": "*/5 * * * *",
    "10min": "*/10 * * * *",
    "20min": "*/20 * * * *",
    # Feb 31st never happens, so the task stays registered but never fires
    "manual": "0 0 31 2 *",
}


def backup_stamp(now: datetime) -> str:
    return ensure_utc(now).isoformat().replace(":", "-").replace(".", "-")[:19]


def backup_filename(now: datetime) -> str:
    return f"{BACKUP_FILENAME_PREFIX}-{backup_stamp(now)}.csv"


def export_participants(db: Session) -> List[Participant]:
    return db.query(Participant).order_by(Participant.created_at.desc(), Participant.id.desc()).all()


def run_backup(db: Session) -> Dict[str, Any]:
    participants = export_participants(db)
    csv_text = participants_to_csv(participants)
    now = utc_now()
    filename = backup_filename(now)
    file_url = upload_backup_file(csv_text.encode("utf-8"), filename, content_type="text/csv")
    logger.info("Backup %s uploaded with %s participants", filename, len(participants))
    return {
        "count": len(participants),
        "filename": filename,
        "file_url": file_url,
        "time": now,
    }


def log_backup_result(
    db: Session,
    *,
    success: bool,
    duration_ms: int,
    source: str,
    count: Optional[int] = None,
    filename: Optional[str] = None,
    file_url: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    """Record a backup attempt and trim old entries. Errors are logged, never raised."""
    try:
        db.add(BackupLog(
            success=success,
            count=count,
            filename=filename,
            file_url=file_url,
            error=error,
            duration_ms=duration_ms,
            time=utc_now(),
            source=source,
        ))
        db.flush()
        stale_ids = [
            row.id
            for row in db.query(BackupLog.id)
            .order_by(BackupLog.time.desc(), BackupLog.id.desc())
            .offset(BACKUP_LOG_RETENTION)
            .all()
        ]
        if stale_ids:
            db.query(BackupLog).filter(BackupLog.id.in_(stale_ids)).delete(synchronize_session=False)
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.error("Failed to write backup log: %s", exc)


def get_recent_backup_logs(db: Session, hours: float = 1) -> List[BackupLog]:
    cutoff = utc_now() - timedelta(hours=hours)
    return (
        db.query(BackupLog)
        .filter(BackupLog.time >= cutoff)
        .order_by(BackupLog.time.desc(), BackupLog.id.desc())
        .all()
    )


def run_logged_backup(db: Session, source: str) -> Dict[str, Any]:
    """Run a backup and record the attempt; re-raises after logging a failure."""
    started = time.monotonic()
    try:
        result = run_backup(db)
    except Exception as exc:
        duration_ms = int((time.monotonic() - started) * 1000)
        logger.error("Backup (%s) failed after %sms: %s", source, duration_ms, exc)
        log_backup_result(db, success=False, duration_ms=duration_ms, source=source, error=str(exc))
        raise
    duration_ms = int((time.monotonic() - started) * 1000)
    log_backup_result(
        db,
        success=True,
        duration_ms=duration_ms,
        source=source,
        count=result["count"],
        filename=result["filename"],
        file_url=result["file_url"],
    )
    return result


def get_bot_config_snapshot(db: Session) -> Dict[str, Any]:
    try:
        config = get_config(db)
    except Exception as exc:
        logger.warning("Bot config snapshot failed: %s", exc)
        return {"version": 0, "updated_at": None, "updated_by": None, "healthy": False, "field_count": 0}

    if config is None:
        return {"version": 0, "updated_at": None, "updated_by": None, "healthy": False, "field_count": 0}

    updated_by = config.updated_by if config.updated_by and config.updated_by != "unknown" else None
    data = config.data if isinstance(config.data, dict) else {}
    return {
        "version": config.version or 1,
        "updated_at": ensure_utc(config.updated_at),
        "updated_by": updated_by,
        "healthy": True,
        "field_count": len(data),
    }


def report_recipient() -> Optional[str]:
    return os.environ.get("EMAIL_REPORT_TO") or os.environ.get("EMAIL_USER")


def send_backup_report(db: Session, recipient: str, hours: float = 1) -> int:
    logs = get_recent_backup_logs(db, hours=hours)
    snapshot = get_bot_config_snapshot(db)
    subject, html, text = build_backup_report_email(logs, snapshot)
    send_email(recipient, subject, html, text, sender_name=REPORT_SENDER_NAME)
    logger.info("Backup report with %s entries sent to %s", len(logs), recipient)
    return len(logs)


def update_backup_frequency(frequency: str) -> Dict[str, Any]:
    cron = FREQUENCY_CRON.get(frequency)
    if cron is None:
        return {"ok": False, "error": f"Unknown frequency: {frequency}"}

    base_url = os.environ.get("COOLIFY_BASE_URL")
    token = os.environ.get("COOLIFY_API_TOKEN")
    task_uuid = os.environ.get("COOLIFY_BACKUP_TASK_UUID")
    if not base_url or not token or not task_uuid:
        return {"ok": False, "error": "Coolify is not configured"}

    url = f"{base_url.rstrip('/')}/api/v1/scheduled-tasks/{task_uuid}"
    try:
        response = requests.patch(
            url,
            json={"frequency": cron},
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            timeout=COOLIFY_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        logger.error("Coolify request failed: %s", exc)
        return {"ok": False, "error": str(exc)}

    if not response.ok:
        logger.error("Coolify rejected frequency update (%s): %s", response.status_code, response.text)
        return {"ok": False, "error": f"Coolify API returned {response.status_code}: {response.text}"}

    logger.info("Backup frequency set to %s (%s)", frequency, cron)
    return {"ok": True, "error": None}
