import io
import logging
import unicodedata
from typing import List
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from csv_io import SAMPLE_IDCARD_CSV, CSVFormatError, parse_idcard_csv
from database import get_db
from idcards import card_filename, generate_card_pdf, generate_cards_zip, generate_qr_png
from models import AdminUser
from routers.participants import get_participant_or_404
from schemas import IdCardBulkRequest, IdCardData
from security import require_admin

router = APIRouter()
logger = logging.getLogger(__name__)


def _attachment(filename: str) -> str:
    # Header values must be latin-1; non-ASCII names travel in filename*
    fallback = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    fallback = fallback.replace('"', "").replace("\\", "") or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def _pdf_response(content: bytes, filename: str) -> StreamingResponse:
    return StreamingResponse(
        io.BytesIO(content),
        media_type="application/pdf",
        headers={"Content-Disposition": _attachment(filename)},
    )


@router.post("/id-cards/parse", response_model=List[IdCardData])
async def parse_id_card_csv(file: UploadFile = File(...), admin: AdminUser = Depends(require_admin)):
    raw = await file.read()
    try:
        return parse_idcard_csv(raw.decode("utf-8-sig"))
    except UnicodeDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be UTF-8 encoded CSV")
    except CSVFormatError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post("/id-cards/pdf")
def single_id_card(payload: IdCardData, admin: AdminUser = Depends(require_admin)):
    card = payload.model_dump()
    try:
        content = generate_card_pdf(card)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return _pdf_response(content, card_filename(card))


@router.post("/id-cards/bulk")
def bulk_id_cards(payload: IdCardBulkRequest, admin: AdminUser = Depends(require_admin)):
    cards = [card.model_dump() for card in payload.cards]
    content, summary = generate_cards_zip(cards)
    if summary["generated"] == 0:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to generate ID cards")
    logger.info("Admin %s generated %s ID cards (%s failed)", admin.email, summary["generated"], summary["failed"])
    return StreamingResponse(
        io.BytesIO(content),
        media_type="application/zip",
        headers={
            "Content-Disposition": _attachment(f"{payload.base_name}_all.zip"),
            "X-Cards-Generated": str(summary["generated"]),
            "X-Cards-Failed": str(summary["failed"]),
        },
    )


@router.get("/id-cards/participants/{participant_id}")
def participant_id_card(participant_id: str, admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    participant = get_participant_or_404(db, participant_id)
    card = {
        "participant_id": participant.participant_id,
        "name": participant.name,
        "email": participant.email,
        "role": participant.role or "",
        "company": participant.institute or "",
        "phone": participant.phone or "",
    }
    return _pdf_response(generate_card_pdf(card), card_filename(card))


@router.get("/id-cards/qr/{participant_id}")
def participant_qr(participant_id: str, admin: AdminUser = Depends(require_admin)):
    try:
        content = generate_qr_png(participant_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return Response(content=content, media_type="image/png")


@router.get("/id-cards/sample-csv")
def sample_csv(admin: AdminUser = Depends(require_admin)):
    return StreamingResponse(
        iter([SAMPLE_IDCARD_CSV]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=id_card_template.csv"},
    )
