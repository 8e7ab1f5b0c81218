import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from models import (
    BOT_CONFIG_KEY,
    BOT_HEARTBEAT_KEY,
    BotConfig,
    BotConfigHistory,
    BotHeartbeat,
    BotLog,
    ScheduledMessage,
)
from time_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

HEARTBEAT_STALE_AFTER_MS = 75_000
HISTORY_LIMIT = 20
LOGS_DEFAULT_LIMIT = 100
LOGS_MAX_LIMIT = 200
BOT_LOG_TYPES = ("ai_mention", "prefix_command", "scheduled", "error")
CREDENTIALS_PATTERN = re.compile(r":([^@/]+)@")


class BotConfigError(Exception):
    pass


class ConfigAlreadyExists(BotConfigError):
    pass


def get_config(db: Session) -> Optional[BotConfig]:
    return db.query(BotConfig).filter(BotConfig.key == BOT_CONFIG_KEY).first()


def replace_config(db: Session, data: Dict[str, Any], saved_by: Optional[str]) -> BotConfig:
    """Overwrite the config, snapshotting the previous document into history first."""
    current = get_config(db)
    author = saved_by or "unknown"
    now = utc_now()
    if current is None:
        current = BotConfig(key=BOT_CONFIG_KEY, data=data, version=1, updated_at=now, updated_by=author)
        db.add(current)
    else:
        db.add(BotConfigHistory(
            snapshot_of=BOT_CONFIG_KEY,
            data=current.data,
            version=current.version or 1,
            saved_at=now,
            saved_by=author,
        ))
        current.data = data
        current.version = (current.version or 1) + 1
        current.updated_at = now
        current.updated_by = author
    db.commit()
    db.refresh(current)
    logger.info("Bot config saved as v%s by %s", current.version, author)
    return current


def seed_config(db: Session, data: Dict[str, Any], saved_by: Optional[str]) -> BotConfig:
    if get_config(db) is not None:
        raise ConfigAlreadyExists("Config already exists. Use PUT to update.")
    config = BotConfig(
        key=BOT_CONFIG_KEY,
        data=data,
        version=1,
        updated_at=utc_now(),
        updated_by=saved_by or "unknown",
    )
    db.add(config)
    db.commit()
    db.refresh(config)
    return config


def list_history(db: Session, limit: int = HISTORY_LIMIT) -> List[BotConfigHistory]:
    return (
        db.query(BotConfigHistory)
        .filter(BotConfigHistory.snapshot_of == BOT_CONFIG_KEY)
        .order_by(BotConfigHistory.saved_at.desc(), BotConfigHistory.id.desc())
        .limit(limit)
        .all()
    )


def get_bot_status(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    heartbeat = db.query(BotHeartbeat).filter(BotHeartbeat.key == BOT_HEARTBEAT_KEY).first()
    if heartbeat is None:
        return {
            "online": False,
            "last_seen": None,
            "tag": None,
            "ping": None,
            "guild_count": None,
            "started_at": None,
            "stale_ms": None,
        }
    now = now or utc_now()
    last_seen = ensure_utc(heartbeat.last_seen)
    stale_ms = int((now - last_seen).total_seconds() * 1000)
    return {
        "online": stale_ms < HEARTBEAT_STALE_AFTER_MS,
        "last_seen": last_seen,
        "tag": heartbeat.tag,
        "ping": heartbeat.ping,
        "guild_count": heartbeat.guild_count,
        "started_at": ensure_utc(heartbeat.started_at),
        "stale_ms": stale_ms,
    }


def query_logs(
    db: Session,
    limit: Optional[int] = None,
    log_type: Optional[str] = None,
    since: Optional[datetime] = None,
) -> List[BotLog]:
    limit = min(limit or LOGS_DEFAULT_LIMIT, LOGS_MAX_LIMIT)
    query = db.query(BotLog)
    if log_type and log_type != "all":
        query = query.filter(BotLog.type == log_type)
    if since is not None:
        query = query.filter(BotLog.timestamp > ensure_utc(since))
    return query.order_by(BotLog.timestamp.desc(), BotLog.id.desc()).limit(limit).all()


def summarize_logs(db: Session) -> Dict[str, Dict[str, int]]:
    rows = (
        db.query(
            BotLog.type,
            func.count(BotLog.id),
            func.sum(case((BotLog.success.is_(False), 1), else_=0)),
            func.avg(BotLog.duration_ms),
        )
        .group_by(BotLog.type)
        .all()
    )
    summary = {}
    for log_type, total, errors, avg_ms in rows:
        summary[log_type] = {
            "total": int(total or 0),
            "errors": int(errors or 0),
            "avg_ms": int(round(avg_ms)) if avg_ms is not None else 0,
        }
    return summary


def validate_scheduled_message(payload) -> Optional[str]:
    if not (payload.name or "").strip():
        return "Name is required"
    if not (payload.channel_id or "").strip():
        return "Channel ID is required"
    if not (payload.content or "").strip() and not (payload.embed_title or "").strip():
        return "Message content is required"
    if payload.schedule_type == "recurring" and not (payload.cron_expression or "").strip():
        return "Cron expression is required for recurring messages"
    if payload.schedule_type == "once" and payload.send_at is None:
        return "Send time is required for one-time messages"
    return None


def create_scheduled_message(db: Session, payload, created_by: Optional[str]) -> ScheduledMessage:
    recurring = payload.schedule_type == "recurring"
    message = ScheduledMessage(
        name=payload.name.strip(),
        channel_id=payload.channel_id.strip(),
        message_format=payload.message_format or "plain",
        content=payload.content or "",
        embed_title=payload.embed_title or "",
        embed_color=payload.embed_color or "#FF6B35",
        schedule_type=payload.schedule_type,
        cron_expression=payload.cron_expression.strip() if recurring else None,
        send_at=None if recurring else ensure_utc(payload.send_at),
        active=True,
        sent=False,
        sent_count=0,
        last_sent_at=None,
        created_at=utc_now(),
        created_by=created_by or "unknown",
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def mask_database_url(url: str) -> str:
    return CREDENTIALS_PATTERN.sub(":****@", url or "")


def collect_debug_info(db: Session, database_url: str) -> Dict[str, Any]:
    counts = {
        "bot_logs": db.query(func.count(BotLog.id)).scalar() or 0,
        "bot_heartbeat": db.query(func.count(BotHeartbeat.key)).scalar() or 0,
        "bot_config": db.query(func.count(BotConfig.key)).scalar() or 0,
        "scheduled_messages": db.query(func.count(ScheduledMessage.id)).scalar() or 0,
        "bot_config_history": db.query(func.count(BotConfigHistory.id)).scalar() or 0,
    }
    heartbeat = db.query(BotHeartbeat).order_by(BotHeartbeat.last_seen.desc()).first()
    latest_log = db.query(BotLog).order_by(BotLog.timestamp.desc(), BotLog.id.desc()).first()
    return {
        "database_url": mask_database_url(database_url),
        "counts": counts,
        "latest_heartbeat": {
            "key": heartbeat.key,
            "last_seen": ensure_utc(heartbeat.last_seen),
            "tag": heartbeat.tag,
            "ping": heartbeat.ping,
            "guild_count": heartbeat.guild_count,
        } if heartbeat else None,
        "latest_log": {
            "type": latest_log.type,
            "event": latest_log.event,
            "success": latest_log.success,
            "timestamp": ensure_utc(latest_log.timestamp),
        } if latest_log else None,
    }
