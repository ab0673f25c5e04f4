"""Create the default admin account if it does not exist.

Usage: python -m app.seed_admin [--email EMAIL] [--password PASSWORD]
"""
import argparse
import logging

from sqlalchemy.orm import Session

from app.core.database import SessionLocal, init_db
from app.core.logging import configure_logging
from app.crud.user import user as crud_user
from app.models.user import User
from app.schemas.auth import AdminCreate
from app.services.auth import auth_service

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_EMAIL = "admin@example.com"
DEFAULT_ADMIN_PASSWORD = "password123"


def seed_admin(db: Session, email: str = DEFAULT_ADMIN_EMAIL, password: str = DEFAULT_ADMIN_PASSWORD) -> User:
    """Return the admin with ``email``, creating it first when missing."""
    existing = crud_user.get_by_email(db, email=email)
    if existing:
        logger.info(f"Admin user {existing.email} already exists")
        return existing
    return auth_service.create_admin(db, admin_in=AdminCreate(email=email, password=password))


def main(argv=None):
    parser = argparse.ArgumentParser(description="Seed the default admin account")
    parser.add_argument("--email", default=DEFAULT_ADMIN_EMAIL)
    parser.add_argument("--password", default=DEFAULT_ADMIN_PASSWORD)
    args = parser.parse_args(argv)

    configure_logging()
    init_db()
    db = SessionLocal()
    try:
        admin = seed_admin(db, email=args.email, password=args.password)
        logger.info(f"Admin account ready: {admin.email}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
