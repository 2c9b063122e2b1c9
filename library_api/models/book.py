from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from library_api.domain.status import BookStatus
from library_api.models.base import Base, UTCDateTime
from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Book(Base):
    """One catalogued copy. The table itself is created by db/migrations."""

    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    isbn: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    published_year: Mapped[int] = mapped_column(Integer, nullable=False)

    # available | checked_out
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BookStatus.available.value
    )
    # Set iff status == checked_out
    checked_out_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )
