import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from backup import backup_stamp, report_recipient, run_logged_backup, send_backup_report
from database import get_db
from security import require_cron_secret

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/cron/backup")
def cron_backup(_: bool = Depends(require_cron_secret), db: Session = Depends(get_db)):
    try:
        result = run_logged_backup(db, source="cron")
    except Exception as exc:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(exc)},
        )
    return {
        "success": True,
        "timestamp": backup_stamp(result["time"]),
        "records": result["count"],
        "file": result["filename"],
        "link": result["file_url"],
    }


@router.post("/cron/backup-report")
def cron_backup_report(_: bool = Depends(require_cron_secret), db: Session = Depends(get_db)):
    recipient = report_recipient()
    if not recipient:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="EMAIL_REPORT_TO or EMAIL_USER env var not set",
        )
    try:
        entries = send_backup_report(db, recipient)
    except Exception as exc:
        logger.exception("Backup report failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(exc)},
        )
    return {"success": True, "sent_to": recipient, "entries": entries}
