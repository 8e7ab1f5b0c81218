import logging
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from csv_io import parse_recipients_csv
from email_bulk import is_valid_email, personalize, send_bulk_emails
from email_templates import list_starter_templates
from emailer import check_connection
from models import AdminUser
from schemas import (
    EmailRecipient,
    EmailTemplateResponse,
    MailerPreviewRequest,
    MailerSendRequest,
    MailerSendResponse,
)
from security import require_admin

router = APIRouter()
logger = logging.getLogger(__name__)

SAMPLE_RECIPIENT = EmailRecipient(
    name="Alex Johnson",
    email="alex@example.com",
    role="Developer",
    company="TechCorp",
    phone="+1122334455",
)


@router.post("/mailer/send", response_model=MailerSendResponse)
def send_mail(payload: MailerSendRequest, admin: AdminUser = Depends(require_admin)):
    if not payload.subject.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Subject is required")
    if not payload.content.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email content is required")
    if not payload.recipients:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one recipient is required")

    invalid = [r.email for r in payload.recipients if not is_valid_email(r.email)]
    if invalid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid email addresses: {', '.join(invalid)}",
        )

    recipients = [r.model_dump() for r in payload.recipients]
    logger.info("Admin %s sending '%s' to %s recipients", admin.email, payload.subject, len(recipients))
    result = send_bulk_emails(recipients, payload.subject, payload.content)
    if result["sent"] > 0:
        result["message"] = f"Successfully sent {result['sent']} emails to {len(recipients)} recipients"
    return MailerSendResponse(**result)


@router.get("/mailer/templates", response_model=List[EmailTemplateResponse])
def mail_templates(admin: AdminUser = Depends(require_admin)):
    return list_starter_templates()


@router.post("/mailer/preview")
def preview_mail(payload: MailerPreviewRequest, admin: AdminUser = Depends(require_admin)):
    recipient = payload.recipient or SAMPLE_RECIPIENT
    body = personalize(payload.content, recipient.model_dump())
    return {"html": body["html"], "text": body["text"]}


@router.post("/mailer/recipients/parse", response_model=List[EmailRecipient])
async def parse_recipients(file: UploadFile = File(...), admin: AdminUser = Depends(require_admin)):
    raw = await file.read()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be UTF-8 encoded CSV")
    return parse_recipients_csv(text)


@router.get("/mailer/test-connection")
def test_connection(admin: AdminUser = Depends(require_admin)):
    return {"success": check_connection()}
