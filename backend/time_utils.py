import os
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def _report_timezone() -> ZoneInfo:
    name = os.environ.get("REPORT_TIMEZONE", "Asia/Kolkata")
    return ZoneInfo(name)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive values; everything is stored as UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_utc(dt: Optional[datetime]) -> str:
    value = ensure_utc(dt)
    if value is None:
        return ""
    return value.isoformat().replace("+00:00", "Z")


def format_report_time(dt: datetime) -> str:
    """Render a timestamp the way the backup report shows it, e.g. ``05 Mar 14:02:09 IST``."""
    local = ensure_utc(dt).astimezone(_report_timezone())
    return f"{local.strftime('%d %b %H:%M:%S')} {local.tzname()}"
