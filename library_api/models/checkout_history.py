from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from library_api.models.base import Base, UTCDateTime
from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckoutHistoryEntry(Base):
    """Append-only audit row; UPDATE/DELETE are rejected by store triggers."""

    __tablename__ = "checkout_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id"), index=True, nullable=False
    )

    # checked_out | returned
    action: Mapped[str] = mapped_column(String(20), nullable=False)

    timestamp: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )
