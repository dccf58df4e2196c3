from sqlalchemy import select
from sqlalchemy.orm import Session

from html2png.core.security import get_password_hash, verify_password
from html2png.models.user import User

_DUMMY_HASH = get_password_hash("html2png-timing-equalizer")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_user(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.scalars(select(User).where(User.email == normalize_email(email))).first()


def create_user(db: Session, email: str, password: str, is_admin: bool = False) -> User:
    user = User(
        email=normalize_email(email),
        password_hash=get_password_hash(password),
        is_admin=is_admin,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def authenticate_user(db: Session, email: str, password: str) -> User | None:
    user = get_user_by_email(db, email)
    if not user:
        # Burn a hash anyway so unknown emails are not faster to reject.
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> bool:
    if not verify_password(current_password, user.password_hash):
        return False
    user.password_hash = get_password_hash(new_password)
    db.commit()
    return True
