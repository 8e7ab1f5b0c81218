import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from auth import clear_session_cookie, create_session_token, set_session_cookie, verify_password
from database import get_db
from models import AdminUser
from schemas import AdminLogin, AdminUserResponse, SessionResponse
from security import require_admin, require_db_password
from time_utils import utc_now

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/auth/login", response_model=SessionResponse)
def admin_login(login_data: AdminLogin, response: Response, db: Session = Depends(get_db)):
    user = db.query(AdminUser).filter(AdminUser.email == login_data.email).first()
    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning("Failed login attempt for %s", login_data.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")

    user.last_login_at = utc_now()
    db.commit()
    db.refresh(user)

    set_session_cookie(response, create_session_token(user))
    logger.info("Admin %s logged in", user.email)
    return SessionResponse(user=AdminUserResponse.model_validate(user))


@router.post("/auth/logout")
def admin_logout(response: Response):
    clear_session_cookie(response)
    return {"success": True}


@router.get("/auth/session", response_model=SessionResponse)
def admin_session(admin: AdminUser = Depends(require_admin)):
    return SessionResponse(user=AdminUserResponse.model_validate(admin))


@router.get("/auth/verify-db-password")
def verify_db_password(
    admin: AdminUser = Depends(require_admin),
    _: bool = Depends(require_db_password),
):
    return {"success": True}
