from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from html2png.core.config import get_settings
from html2png.core.errors import HistoryWriteError
from html2png.models.conversion import Conversion
from html2png.services.crypto import EnvelopeCodec

logger = structlog.get_logger()

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100
TRUNCATION_MARKER = "..."


def make_preview(html: str, max_chars: int) -> str:
    if len(html) <= max_chars:
        return html
    return html[:max_chars] + TRUNCATION_MARKER


@dataclass(frozen=True)
class ConversionView:
    id: int
    html_preview: str
    html: str
    width: int
    height: int | None
    dpr: int
    full_page: bool
    byte_size: int
    created_at: datetime


class ConversionHistory:
    def __init__(self, db: Session, codec: EnvelopeCodec, preview_chars: int | None = None):
        self.db = db
        self.codec = codec
        self.preview_chars = preview_chars or get_settings().HISTORY_PREVIEW_CHARS

    def record(
        self,
        owner_id: int,
        html: str,
        width: int,
        height: int | None,
        dpr: int,
        full_page: bool,
        byte_size: int,
    ) -> int:
        row = Conversion(
            user_id=owner_id,
            html_preview=make_preview(html, self.preview_chars),
            html_encrypted=self.codec.encrypt(html),
            width=width,
            height=height,
            dpr=dpr,
            full_page=full_page,
            byte_size=byte_size,
        )
        try:
            self.db.add(row)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise HistoryWriteError(details={"error": str(e)}) from e
        return row.id

    def save(
        self,
        owner_id: int,
        html: str,
        width: int,
        height: int | None,
        dpr: int,
        full_page: bool,
        byte_size: int,
    ) -> int | None:
        """Best-effort ``record``: failures are logged and ``None`` is returned."""
        try:
            record_id = self.record(owner_id, html, width, height, dpr, full_page, byte_size)
        except HistoryWriteError as e:
            logger.error("history.write_failed", user_id=owner_id, error=e.details.get("error"))
            return None
        logger.debug("history.saved", user_id=owner_id, conversion_id=record_id, byte_size=byte_size)
        return record_id

    def list_records(self, owner_id: int, limit: int = DEFAULT_LIST_LIMIT, offset: int = 0) -> tuple[list[ConversionView], int]:
        limit = min(max(limit, 1), MAX_LIST_LIMIT)
        offset = max(offset, 0)

        rows = self.db.scalars(
            select(Conversion)
            .where(Conversion.user_id == owner_id)
            .order_by(Conversion.created_at.desc(), Conversion.id.desc())
            .limit(limit)
            .offset(offset)
        ).all()
        total = self.count(owner_id)
        return [self._view(row) for row in rows], total

    def count(self, owner_id: int) -> int:
        return self.db.scalar(select(func.count()).select_from(Conversion).where(Conversion.user_id == owner_id)) or 0

    def get(self, owner_id: int, conversion_id: int) -> ConversionView | None:
        row = self.db.scalars(
            select(Conversion).where(Conversion.id == conversion_id, Conversion.user_id == owner_id)
        ).first()
        return self._view(row) if row else None

    def delete(self, owner_id: int, conversion_id: int) -> bool:
        result = self.db.execute(
            delete(Conversion).where(Conversion.id == conversion_id, Conversion.user_id == owner_id)
        )
        self.db.commit()
        return (result.rowcount or 0) > 0

    def _view(self, row: Conversion) -> ConversionView:
        # A record that no longer decrypts still lists; its body is a sentinel string.
        return ConversionView(
            id=row.id,
            html_preview=row.html_preview,
            html=self.codec.decrypt(row.html_encrypted),
            width=row.width,
            height=row.height,
            dpr=row.dpr,
            full_page=row.full_page,
            byte_size=row.byte_size,
            created_at=row.created_at,
        )
