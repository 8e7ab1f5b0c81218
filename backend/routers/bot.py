import logging
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from bot_config import (
    ConfigAlreadyExists,
    collect_debug_info,
    create_scheduled_message,
    get_bot_status,
    get_config,
    list_history,
    query_logs,
    replace_config,
    seed_config,
    summarize_logs,
    validate_scheduled_message,
)
from database import DATABASE_URL, get_db
from models import AdminUser, ScheduledMessage
from schemas import (
    BotConfigHistoryResponse,
    BotConfigMeta,
    BotConfigResponse,
    BotLogResponse,
    BotLogsResponse,
    BotStatusResponse,
    ScheduledMessageCreate,
    ScheduledMessageResponse,
    ScheduledMessageToggle,
)
from security import require_admin
from time_utils import ensure_utc

router = APIRouter()
logger = logging.getLogger(__name__)


def _require_object(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payload must be a JSON object")
    return payload


def _get_message_or_404(db: Session, message_id: int) -> ScheduledMessage:
    message = db.query(ScheduledMessage).filter(ScheduledMessage.id == message_id).first()
    if not message:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scheduled message not found")
    return message


@router.get("/bot-config", response_model=BotConfigResponse)
def read_bot_config(admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    config = get_config(db)
    if config is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "No config found", "hint": "Use POST /api/bot-config to seed your initial config."},
        )
    return BotConfigResponse(
        data=config.data or {},
        meta=BotConfigMeta(
            updated_at=ensure_utc(config.updated_at),
            updated_by=config.updated_by,
            version=config.version or 1,
        ),
    )


@router.put("/bot-config")
def update_bot_config(
    payload: Any = Body(...),
    admin: AdminUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    config = replace_config(db, _require_object(payload), admin.email)
    return {"success": True, "message": "Bot configuration updated", "version": config.version}


@router.post("/bot-config", status_code=status.HTTP_201_CREATED)
def seed_bot_config(
    payload: Any = Body(...),
    admin: AdminUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        seed_config(db, _require_object(payload), admin.email)
    except ConfigAlreadyExists as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    logger.info("Bot config seeded by %s", admin.email)
    return {"success": True, "message": "Bot config seeded"}


@router.get("/bot-config/history", response_model=List[BotConfigHistoryResponse])
def bot_config_history(admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    return list_history(db)


@router.get("/bot-config/status", response_model=BotStatusResponse)
def bot_status(admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    return get_bot_status(db)


@router.get("/bot-config/logs", response_model=BotLogsResponse)
def bot_logs(
    limit: Optional[int] = Query(None, ge=1),
    log_type: Optional[str] = Query(None, alias="type"),
    since: Optional[datetime] = Query(None),
    admin: AdminUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    logs = query_logs(db, limit=limit, log_type=log_type, since=since)
    return BotLogsResponse(
        logs=[BotLogResponse.model_validate(log) for log in logs],
        summary=summarize_logs(db),
    )


@router.get("/bot-config/messages", response_model=List[ScheduledMessageResponse])
def list_scheduled_messages(admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    return db.query(ScheduledMessage).order_by(ScheduledMessage.created_at.desc(), ScheduledMessage.id.desc()).all()


@router.post("/bot-config/messages", response_model=ScheduledMessageResponse, status_code=status.HTTP_201_CREATED)
def create_message(
    payload: ScheduledMessageCreate,
    admin: AdminUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    error = validate_scheduled_message(payload)
    if error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)
    message = create_scheduled_message(db, payload, admin.email)
    logger.info("Scheduled message %s created by %s", message.id, admin.email)
    return message


@router.patch("/bot-config/messages/{message_id}", response_model=ScheduledMessageResponse)
def toggle_message(
    message_id: int,
    payload: ScheduledMessageToggle,
    admin: AdminUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    message = _get_message_or_404(db, message_id)
    message.active = payload.active
    db.commit()
    db.refresh(message)
    return message


@router.delete("/bot-config/messages/{message_id}")
def delete_message(message_id: int, admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    message = _get_message_or_404(db, message_id)
    db.delete(message)
    db.commit()
    return {"success": True}


@router.get("/bot-config/debug")
def bot_debug(admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        info = collect_debug_info(db, DATABASE_URL)
    except Exception as exc:
        logger.exception("Bot debug query failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(exc)},
        )
    return {"success": True, **info}
