from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional

from sqlalchemy.orm import Session

from auth import get_password_hash
from database import Base, DATABASE_URL, SessionLocal, engine
from bot_config import mask_database_url
from models import AdminUser

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

DEFAULT_ADMIN_EMAIL = "admin@hackoverflow.com"
DEFAULT_ADMIN_NAME = "Admin User"


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a dashboard admin account.")
    parser.add_argument("--email", default=DEFAULT_ADMIN_EMAIL, help="Login email for the admin.")
    parser.add_argument("--name", default=DEFAULT_ADMIN_NAME, help="Display name.")
    parser.add_argument(
        "--password",
        default=None,
        help="Initial password. Falls back to the ADMIN_PASSWORD environment variable.",
    )
    return parser.parse_args(argv)


def create_admin(db: Session, email: str, name: str, password: str) -> bool:
    """Insert the admin unless the email is taken. Returns True when a row was created."""
    email = email.strip().lower()
    if db.query(AdminUser).filter(AdminUser.email == email).first():
        logger.info("Admin `%s` already exists. Nothing to do.", email)
        return False
    db.add(AdminUser(
        email=email,
        name=name,
        hashed_password=get_password_hash(password),
        role="admin",
        is_active=True,
    ))
    db.commit()
    logger.info("Admin `%s` created.", email)
    return True


def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)
    password = args.password or os.environ.get("ADMIN_PASSWORD")
    if not password:
        logger.error("No password given. Pass --password or set ADMIN_PASSWORD.")
        return 1

    logger.info("Using database %s", mask_database_url(DATABASE_URL))
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        create_admin(db, args.email, args.name, password)
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
