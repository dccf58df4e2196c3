from sqlalchemy.orm import Session

from html2png.core.config import get_settings
from html2png.models.setting import Setting

REGISTRATION_ENABLED_KEY = "registration_enabled"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def get_setting(db: Session, key: str) -> str | None:
    row = db.get(Setting, key)
    return row.value if row else None


def set_setting(db: Session, key: str, value: str) -> None:
    row = db.get(Setting, key)
    if row:
        row.value = value
    else:
        db.add(Setting(key=key, value=value))
    db.commit()


def is_registration_enabled(db: Session) -> bool:
    # Admin toggle in the settings table wins over the env default.
    value = get_setting(db, REGISTRATION_ENABLED_KEY)
    if value is None:
        return get_settings().REGISTRATION_ENABLED
    return value.strip().lower() in _TRUE_VALUES
