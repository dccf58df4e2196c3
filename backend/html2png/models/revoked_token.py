from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from html2png.core.database import Base


class RevokedToken(Base):
    __tablename__ = "revoked_tokens"

    # SHA-256 hex of the raw bearer token.
    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    # Natural expiry of the token; rows past this are safe to purge.
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)
