from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from html2png.core.database import Base


class Conversion(Base):
    __tablename__ = "conversions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)

    # Plaintext, truncated for list views.
    html_preview: Mapped[str] = mapped_column(Text, nullable=False)
    # Full body in the "enc:" / "plain:" envelope.
    html_encrypted: Mapped[str] = mapped_column(Text, nullable=False)

    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int | None] = mapped_column(Integer)
    dpr: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    full_page: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    byte_size: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True, nullable=False)
