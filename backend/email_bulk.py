import html as html_lib
import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from emailer import check_connection, send_email
from email_templates import wrap_in_template

logger = logging.getLogger(__name__)

MUSTACHE_PATTERN = re.compile(r"\{\{\s*([a-z0-9_]+)\s*\}\}", re.IGNORECASE)
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MAILER_SENDER_NAME = "Hackathon Mailer"
SMTP_CONNECT_ERROR = "Failed to connect to email server. Check your email configuration."

ALLOWED_TAGS = {
    "name",
    "email",
    "role",
    "company",
    "phone",
}

TAG_DEFAULTS = {
    "name": "there",
}


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and bool(EMAIL_PATTERN.match(value))


def _normalize_value(tag: str, value: Any) -> str:
    if value is None or str(value).strip() == "":
        return TAG_DEFAULTS.get(tag, "")
    return str(value)


def render_email_template(template: str, context: Mapping[str, Any], *, html_mode: bool) -> str:
    if not template:
        return ""

    def repl(match: re.Match) -> str:
        tag = match.group(1).lower()
        if tag not in ALLOWED_TAGS:
            return match.group(0)
        value = _normalize_value(tag, context.get(tag))
        if html_mode:
            return html_lib.escape(value)
        return value

    return MUSTACHE_PATTERN.sub(repl, template)


def derive_text_from_html(html: str) -> str:
    if not html:
        return ""
    text = re.sub(r"<\s*(style|head)[^>]*>.*?<\s*/\s*\1\s*>", "", html, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<\s*br\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<\s*/(p|h[1-6]|li|tr)\s*>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = html_lib.unescape(text)
    text = re.sub(r"[ \t\r\f\v]+", " ", text)
    text = re.sub(r"\n\s*\n+", "\n", text)
    return text.strip()


def personalize(content: str, recipient: Mapping[str, Any]) -> Dict[str, str]:
    """Render ``content`` for one recipient.

    Returns the branded HTML body and a plain text alternative derived from
    the personalised content (not from the wrapper).
    """
    rendered = render_email_template(content, recipient, html_mode=True)
    return {
        "html": wrap_in_template(rendered),
        "text": derive_text_from_html(rendered),
    }


def send_bulk_emails(recipients: List[Mapping[str, Any]], subject: str, content: str) -> Dict[str, Any]:
    if not check_connection():
        return {
            "success": False,
            "sent": 0,
            "failed": len(recipients),
            "errors": [SMTP_CONNECT_ERROR],
        }

    sent = 0
    failed = 0
    errors: List[str] = []
    for recipient in recipients:
        email_value = str(recipient.get("email") or "")
        try:
            body = personalize(content, recipient)
            personalised_subject = render_email_template(subject, recipient, html_mode=False)
            send_email(email_value, personalised_subject, body["html"], body["text"], sender_name=MAILER_SENDER_NAME)
            sent += 1
        except Exception as exc:
            failed += 1
            errors.append(f"Failed to send to {email_value}: {exc}")
            logger.warning("Bulk email to %s failed: %s", email_value, exc)

    logger.info("Bulk email finished: sent=%s failed=%s", sent, failed)
    return {
        "success": sent > 0,
        "sent": sent,
        "failed": failed,
        "errors": errors,
    }
