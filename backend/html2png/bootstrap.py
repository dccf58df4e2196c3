import structlog
from sqlalchemy.orm import Session

from html2png.core.config import get_settings
from html2png.core.database import SessionLocal
from html2png.core.security import validate_password_strength
from html2png.models.user import User
from html2png.services import accounts

logger = structlog.get_logger()


def ensure_admin(db: Session, email: str | None = None, password: str | None = None) -> User | None:
    """Create the configured admin account, or promote it if the email already exists.

    Does nothing unless both an email and a password are configured. An
    existing account keeps its password.
    """
    settings = get_settings()
    email = email or settings.ADMIN_EMAIL
    password = password or settings.ADMIN_PASSWORD
    if not email or not password:
        return None

    existing = accounts.get_user_by_email(db, email)
    if existing:
        if not existing.is_admin:
            existing.is_admin = True
            db.commit()
            logger.info("bootstrap.admin_promoted", user_id=existing.id)
        return existing

    if not validate_password_strength(password):
        logger.warning("bootstrap.admin_skipped", reason="ADMIN_PASSWORD is too short")
        return None

    user = accounts.create_user(db, email, password, is_admin=True)
    logger.info("bootstrap.admin_created", user_id=user.id)
    return user


if __name__ == "__main__":
    from html2png.core.database import Base, engine
    from html2png.core.logger import configure_logging
    from html2png import models  # noqa: F401

    configure_logging()
    Base.metadata.create_all(bind=engine)
    # Do not hardcode credentials in the repo. Use ADMIN_EMAIL / ADMIN_PASSWORD.
    db = SessionLocal()
    try:
        if ensure_admin(db) is None:
            print("Bootstrap skipped. Set ADMIN_EMAIL and ADMIN_PASSWORD to create an admin user.")
    finally:
        db.close()
