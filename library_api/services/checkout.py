"""Checkout / return state machine.

A book moves ``available -> checked_out`` on checkout and back on return.
Each transition is one transaction: a compare-and-swap UPDATE on the book's
status plus the matching history row. Concurrent callers are serialized by
the store; whichever UPDATE lands second matches zero rows and is reported as
a conflict, so a book is never checked out twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from library_api.crud.books import book_exists, conditional_update_status, get_book
from library_api.crud.checkout_history import list_history_for_book, record_entry
from library_api.crud.pagination import DEFAULT_LIMIT, DEFAULT_OFFSET, Page
from library_api.crud.translate import translate_storage_errors
from library_api.db.session import begin_write
from library_api.domain.errors import BookNotFoundError, BookUnavailableError, InternalError
from library_api.domain.status import BookStatus, CheckoutAction
from library_api.models.book import Book
from library_api.models.checkout_history import CheckoutHistoryEntry
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Transition:
    from_status: BookStatus
    to_status: BookStatus
    action: CheckoutAction
    conflict_message: str


CHECKOUT = Transition(
    from_status=BookStatus.available,
    to_status=BookStatus.checked_out,
    action=CheckoutAction.checked_out,
    conflict_message="Book is already checked out",
)

RETURN = Transition(
    from_status=BookStatus.checked_out,
    to_status=BookStatus.available,
    action=CheckoutAction.returned,
    conflict_message="Book is not currently checked out",
)


def _apply_transition(db: Session, book_id: str, transition: Transition) -> Book:
    with translate_storage_errors(db):
        # Stamp under the write lock so history timestamps follow commit order.
        begin_write(db)
        now = utcnow()
        checked_out_at = now if transition.to_status is BookStatus.checked_out else None
        affected = conditional_update_status(
            db,
            book_id=book_id,
            expected_status=transition.from_status,
            new_status=transition.to_status,
            checked_out_at=checked_out_at,
        )
        if affected == 0:
            if not book_exists(db, book_id):
                raise BookNotFoundError()
            raise BookUnavailableError(transition.conflict_message)

        record_entry(db, book_id=book_id, action=transition.action, timestamp=now)
        book = db.get(Book, book_id, populate_existing=True)
        if book is None:
            raise InternalError()
        db.commit()

    logger.info("Book %s %s", book_id, transition.action.value)
    return book


def checkout_book(db: Session, book_id: str) -> Book:
    return _apply_transition(db, book_id, CHECKOUT)


def return_book(db: Session, book_id: str) -> Book:
    return _apply_transition(db, book_id, RETURN)


def find_history_by_book_id(
    db: Session,
    book_id: str,
    *,
    limit: int = DEFAULT_LIMIT,
    offset: int = DEFAULT_OFFSET,
) -> Page[CheckoutHistoryEntry]:
    if get_book(db, book_id) is None:
        raise BookNotFoundError()
    return list_history_for_book(db, book_id, limit=limit, offset=offset)
