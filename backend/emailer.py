import os
import smtplib
import ssl
import logging
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_SMTP_PORT = 587
SMTP_TIMEOUT_SECONDS = 20


@dataclass
class SMTPConfig:
    host: str
    port: int
    user: str
    password: str
    use_ssl: bool


def _load_smtp() -> SMTPConfig:
    host = os.environ.get("EMAIL_HOST")
    user = os.environ.get("EMAIL_USER")
    password = os.environ.get("EMAIL_PASS")
    if not host or not user or not password:
        raise RuntimeError("Missing email configuration. Please set EMAIL_HOST, EMAIL_USER, and EMAIL_PASS")

    port_raw = os.environ.get("EMAIL_PORT") or str(DEFAULT_SMTP_PORT)
    try:
        port = int(port_raw)
    except ValueError:
        raise RuntimeError(f"Invalid EMAIL_PORT: {port_raw}")

    return SMTPConfig(host=host, port=port, user=user, password=password, use_ssl=port == 465)


def _open_connection(config: SMTPConfig) -> smtplib.SMTP:
    context = ssl.create_default_context()
    if config.use_ssl:
        server = smtplib.SMTP_SSL(config.host, config.port, context=context, timeout=SMTP_TIMEOUT_SECONDS)
    else:
        server = smtplib.SMTP(config.host, config.port, timeout=SMTP_TIMEOUT_SECONDS)
        server.ehlo()
        server.starttls(context=context)
        server.ehlo()
    server.login(config.user, config.password)
    return server


def check_connection() -> bool:
    try:
        config = _load_smtp()
        with _open_connection(config):
            pass
    except Exception as exc:
        logger.error("SMTP connection check failed: %s", exc)
        return False
    return True


def send_email(to_email: str, subject: str, html: str, text: Optional[str] = None, sender_name: Optional[str] = None) -> None:
    config = _load_smtp()
    message = EmailMessage()
    message["From"] = formataddr((sender_name, config.user)) if sender_name else config.user
    message["To"] = to_email
    message["Subject"] = subject
    if text:
        message.set_content(text)
        message.add_alternative(html, subtype="html")
    else:
        message.set_content(html, subtype="html")

    with _open_connection(config) as server:
        server.send_message(message)
    logger.info("Email sent to %s", to_email)
