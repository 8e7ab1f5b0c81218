import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from models import AdminUser, Sponsor
from schemas import BulkWriteResult, SponsorCreate, SponsorResponse, SponsorUpdate
from security import require_admin
from time_utils import utc_now

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_sponsor_or_404(db: Session, sponsor_id: str) -> Sponsor:
    sponsor = db.query(Sponsor).filter(Sponsor.sponsor_id == sponsor_id).first()
    if not sponsor:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sponsor not found")
    return sponsor


@router.get("/sponsors", response_model=List[SponsorResponse])
def list_sponsors(admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    return db.query(Sponsor).order_by(Sponsor.created_at.desc(), Sponsor.id.desc()).all()


@router.get("/sponsors/{sponsor_id}", response_model=SponsorResponse)
def get_sponsor(sponsor_id: str, admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    return _get_sponsor_or_404(db, sponsor_id)


@router.post("/sponsors", response_model=BulkWriteResult, status_code=status.HTTP_201_CREATED)
def create_sponsors(
    payload: List[SponsorCreate],
    admin: AdminUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not payload:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one sponsor is required")

    ids = [item.sponsor_id for item in payload]
    duplicates = {sponsor_id for sponsor_id in ids if ids.count(sponsor_id) > 1}
    existing = db.query(Sponsor.sponsor_id).filter(Sponsor.sponsor_id.in_(ids)).all()
    duplicates.update(row.sponsor_id for row in existing)
    if duplicates:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Duplicate sponsor IDs: {', '.join(sorted(duplicates))}",
        )

    now = utc_now()
    for item in payload:
        db.add(Sponsor(**item.model_dump(), created_at=now, updated_at=now))
    db.commit()
    logger.info("Admin %s created %s sponsors", admin.email, len(payload))
    return BulkWriteResult(count=len(payload))


@router.put("/sponsors/{sponsor_id}", response_model=SponsorResponse)
def update_sponsor(
    sponsor_id: str,
    payload: SponsorUpdate,
    admin: AdminUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    sponsor = _get_sponsor_or_404(db, sponsor_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field in ("name", "email") and value is None:
            continue
        setattr(sponsor, field, value)
    sponsor.updated_at = utc_now()
    db.commit()
    db.refresh(sponsor)
    return sponsor


@router.delete("/sponsors/{sponsor_id}")
def delete_sponsor(sponsor_id: str, admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    sponsor = _get_sponsor_or_404(db, sponsor_id)
    db.delete(sponsor)
    db.commit()
    return {"success": True}


@router.delete("/sponsors", response_model=BulkWriteResult)
def delete_all_sponsors(admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    count = db.query(Sponsor).delete(synchronize_session=False)
    db.commit()
    logger.warning("Admin %s deleted all %s sponsors", admin.email, count)
    return BulkWriteResult(count=count)
