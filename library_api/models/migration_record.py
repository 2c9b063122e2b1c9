from __future__ import annotations

from datetime import datetime

from library_api.models.base import Base, UTCDateTime
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column


class MigrationRecord(Base):
    __tablename__ = "_migrations"

    # Script file name, e.g. "001_create_books.sql"
    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    applied_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
