import os
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from time_utils import format_report_time, utc_now

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

EVENT_NAME = os.environ.get("EVENT_NAME", "HackOverflow 4.0")
WEBSITE_URL = os.environ.get("EVENT_WEBSITE_URL", "https://hackoverflow4.tech/")

EMAIL_STYLES = {
    "heading1": "margin: 0 0 20px 0; color: #FFFFFF; font-size: 34px; font-weight: 800; line-height: 1.3; font-family: 'Poppins', Arial, Helvetica, sans-serif; letter-spacing: -0.5px;",
    "heading2": "margin: 0 0 18px 0; color: #FFFFFF; font-size: 28px; font-weight: 700; line-height: 1.3; font-family: 'Poppins', Arial, Helvetica, sans-serif;",
    "heading3": "margin: 0 0 14px 0; color: #FFD47C; font-size: 22px; font-weight: 700; line-height: 1.4; font-family: 'Poppins', Arial, Helvetica, sans-serif;",
    "paragraph": "margin: 0 0 16px 0; color: #E0E0E0; font-size: 16px; line-height: 1.7; font-family: 'Poppins', Arial, Helvetica, sans-serif;",
    "list": "margin: 0 0 20px 0; padding: 0 0 0 20px; color: #E0E0E0; font-size: 16px; line-height: 1.9; font-family: 'Poppins', Arial, Helvetica, sans-serif;",
    "list_item": "margin-bottom: 10px; color: #E0E0E0;",
    "badge": "display: inline-block; padding: 8px 18px; background-color: rgba(231, 88, 41, 0.2); border: 1px solid rgba(231, 88, 41, 0.5); border-radius: 50px; color: #FFD47C; font-size: 12px; font-weight: 600; letter-spacing: 1px; text-transform: uppercase; margin: 0 0 16px 0;",
    "highlight": "color: #FCB216; font-weight: 700;",
}

STARTER_TEMPLATES: Dict[str, str] = {
    "welcome": "Welcome Email",
    "reminder": "Event Reminder",
    "announcement": "Announcement",
    "thank_you": "Thank You",
    "theme_announcement": "Theme Announcement",
}

REPORT_COLUMNS = ["TIME", "STATUS", "RECORDS", "FILE", "DURATION", "ERROR"]
REPORT_SENDER_NAME = "Hackoverflow Backup"


def format_duration(ms: Optional[int]) -> str:
    ms = int(ms or 0)
    if ms < 1000:
        return f"{ms}ms"
    return f"{ms / 1000:.1f}s"


@lru_cache(maxsize=1)
def _environment() -> Environment:
    environment = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(enabled_extensions=("html", "xml")),
    )
    environment.globals.update(
        styles=EMAIL_STYLES,
        event_name=EVENT_NAME,
        website_url=WEBSITE_URL,
    )
    environment.filters["duration"] = format_duration
    environment.filters["report_time"] = format_report_time
    return environment


def wrap_in_template(content: str) -> str:
    template = _environment().get_template("email/wrapper.html")
    return template.render(
        content=content,
        year=utc_now().year,
        edition="4.0",
        preheader=f"{EVENT_NAME} - Join us for an incredible 36-hour hackathon experience!",
        logo_url=os.environ.get("EMAIL_LOGO_URL", "https://hackoverflow4.tech/images/Logo.png"),
        instagram_url="https://www.instagram.com/hackoverflow.tech",
        contact_email=os.environ.get("EMAIL_CONTACT", "hackoverflow@mes.ac.in"),
    ).strip()


def render_starter_template(key: str) -> str:
    if key not in STARTER_TEMPLATES:
        raise KeyError(key)
    return _environment().get_template(f"email/starters/{key}.html").render().strip()


def list_starter_templates() -> List[Dict[str, str]]:
    return [
        {"key": key, "label": label, "html": render_starter_template(key)}
        for key, label in STARTER_TEMPLATES.items()
    ]


def _report_status(total: int, failed: int) -> Tuple[str, str]:
    if failed == 0:
        return "ALL PASSED", "#4ade80"
    if failed == total:
        return "ALL FAILED", "#f87171"
    return "PARTIAL FAILURE", "#facc15"


def build_backup_report_email(
    logs: Sequence[Any],
    bot_config: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Tuple[str, str, str]:
    """Build the hourly backup report.

    ``logs`` are backup log rows (anything with ``success``, ``count``,
    ``file_url``, ``error``, ``duration_ms`` and ``time``). ``bot_config`` is
    the snapshot from :func:`backup.get_bot_config_snapshot`.
    """
    now = now or utc_now()
    period_end = format_report_time(now)
    total = len(logs)
    succeeded = sum(1 for entry in logs if entry.success)
    failed = total - succeeded
    status_label, status_color = _report_status(total, failed)

    stat_cards = [
        {"label": "TOTAL BACKUPS", "value": total, "color": "#fff"},
        {"label": "SUCCEEDED", "value": succeeded, "color": "#4ade80"},
        {"label": "FAILED", "value": failed, "color": "#f87171" if failed else "#666"},
    ]

    html = _environment().get_template("email/backup_report.html").render(
        logs=logs,
        bot_config=bot_config,
        stat_cards=stat_cards,
        columns=REPORT_COLUMNS,
        status_label=status_label,
        status_color=status_color,
        period_end=period_end,
        timezone_name=os.environ.get("REPORT_TIMEZONE", "Asia/Kolkata"),
    )

    bot_part = ""
    if bot_config:
        bot_part = f"v{bot_config.get('version', 0)}"
    if total == 0:
        subject = f"[Hackoverflow] No backups recorded - Bot Config {bot_part} {period_end}"
    else:
        if bot_config:
            bot_part = f"{bot_part} {'✓' if bot_config.get('healthy') else '✗'}"
        subject = f"[Hackoverflow] {succeeded}/{total} backups succeeded - Bot Config {bot_part} - {period_end}"

    text_lines = [
        f"Hackoverflow hourly system report ({status_label})",
        f"Period ending {period_end}",
        f"Total backups: {total}, succeeded: {succeeded}, failed: {failed}",
    ]
    if bot_config:
        text_lines.append(
            f"Bot config v{bot_config.get('version', 0)}: {'HEALTHY' if bot_config.get('healthy') else 'UNREACHABLE'}"
        )
    if not logs:
        text_lines.append("NO BACKUPS WERE RECORDED IN THIS HOUR")
    for entry in logs:
        outcome = "SUCCESS" if entry.success else "FAILED"
        line = f"- {format_report_time(entry.time)} {outcome} records={entry.count if entry.count is not None else '-'} duration={format_duration(entry.duration_ms)}"
        if entry.error:
            line += f" error={entry.error}"
        text_lines.append(line)

    return subject, html, "\n".join(text_lines)
