import hmac
import os
from typing import Optional
from fastapi import Cookie, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from auth import SESSION_COOKIE_NAME, decode_token
from models import AdminUser

DEFAULT_DB_PAGE_PASSWORD = "hackoverflow-db-2024"


def _unauthorized() -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_optional_admin(
    auth_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
    db: Session = Depends(get_db),
) -> Optional[AdminUser]:
    if not auth_token:
        return None
    try:
        payload = decode_token(auth_token)
    except HTTPException:
        return None
    if payload.get("type") != "session":
        return None
    user_id = payload.get("sub")
    if not user_id or not str(user_id).isdigit():
        return None
    user = db.query(AdminUser).filter(AdminUser.id == int(user_id)).first()
    if not user or user.email != payload.get("email") or user.is_active is False:
        return None
    return user


def require_admin(user: Optional[AdminUser] = Depends(get_optional_admin)) -> AdminUser:
    if user is None:
        raise _unauthorized()
    return user


def require_cron_secret(x_cron_secret: Optional[str] = Header(None, alias="x-cron-secret")) -> bool:
    expected = os.environ.get("CRON_SECRET")
    if not expected or not x_cron_secret:
        raise _unauthorized()
    if not hmac.compare_digest(x_cron_secret.encode("utf-8"), expected.encode("utf-8")):
        raise _unauthorized()
    return True


def require_db_password(x_db_password: Optional[str] = Header(None, alias="X-DB-PASSWORD")) -> bool:
    expected = os.environ.get("DB_PAGE_PASSWORD", DEFAULT_DB_PAGE_PASSWORD)
    if not x_db_password or not hmac.compare_digest(x_db_password.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid database password")
    return True
