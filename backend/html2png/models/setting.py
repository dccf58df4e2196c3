from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from html2png.core.database import Base


class Setting(Base):
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(120), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
