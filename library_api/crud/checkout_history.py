from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from library_api.crud.pagination import DEFAULT_LIMIT, DEFAULT_OFFSET, Page, check_window
from library_api.crud.translate import translate_storage_errors
from library_api.db.session import read_only
from library_api.domain.status import CheckoutAction
from library_api.models.checkout_history import CheckoutHistoryEntry
from sqlalchemy import func, select, text
from sqlalchemy.orm import Session


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def record_entry(
    db: Session,
    *,
    book_id: str,
    action: CheckoutAction,
    timestamp: datetime | None = None,
) -> CheckoutHistoryEntry:
    """Append one audit row inside the caller's open transaction (flush, no commit)."""
    entry = CheckoutHistoryEntry(
        id=str(uuid4()),
        book_id=book_id,
        action=CheckoutAction(action).value,
        timestamp=timestamp or utcnow(),
    )
    db.add(entry)
    db.flush()
    return entry


def list_history_for_book(
    db: Session,
    book_id: str,
    *,
    limit: int = DEFAULT_LIMIT,
    offset: int = DEFAULT_OFFSET,
) -> Page[CheckoutHistoryEntry]:
    check_window(limit, offset)
    base = select(CheckoutHistoryEntry).where(CheckoutHistoryEntry.book_id == book_id)

    with translate_storage_errors(db):
        read_only(db)
        total = int(
            db.execute(select(func.count()).select_from(base.subquery())).scalar_one()
        )
        rows = (
            db.execute(
                # rowid breaks timestamp ties in insertion order
                base.order_by(
                    CheckoutHistoryEntry.timestamp.desc(), text("checkout_history.rowid DESC")
                )
                .limit(limit)
                .offset(offset)
            )
            .scalars()
            .all()
        )
    return Page(items=list(rows), total=total)
