from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, cast
from uuid import uuid4

from library_api.crud.pagination import DEFAULT_LIMIT, DEFAULT_OFFSET, Page, check_window
from library_api.crud.translate import translate_storage_errors
from library_api.db.session import begin_write, read_only
from library_api.domain.errors import ValidationError
from library_api.domain.status import BookStatus
from library_api.models.book import Book
from library_api.schemas.books import BOOK_MUTABLE_COLUMNS, BookPatch
from sqlalchemy import func, select, text, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.orm import Session

REQUIRED_FIELDS = ("title", "author", "isbn", "published_year")
TEXT_FIELDS = ("title", "author", "isbn")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _check_year(value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Invalid field: published_year", field="published_year")


def create_book(
    db: Session,
    *,
    title: str | None = None,
    author: str | None = None,
    isbn: str | None = None,
    published_year: int | None = None,
) -> Book:
    fields: dict[str, Any] = {
        "title": title,
        "author": author,
        "isbn": isbn,
        "published_year": published_year,
    }
    for name in REQUIRED_FIELDS:
        if _is_blank(fields[name]):
            raise ValidationError(f"Missing required field: {name}", field=name)
    _check_year(published_year)

    now = utcnow()
    book = Book(
        id=str(uuid4()),
        title=cast(str, title).strip(),
        author=cast(str, author).strip(),
        isbn=cast(str, isbn).strip(),
        published_year=cast(int, published_year),
        status=BookStatus.available.value,
        checked_out_at=None,
        created_at=now,
        updated_at=now,
    )
    with translate_storage_errors(db):
        begin_write(db)
        db.add(book)
        db.flush()
        # Read back server-side values before commit ends the transaction.
        db.refresh(book)
        db.commit()
    return book


def get_book(db: Session, book_id: str) -> Book | None:
    with translate_storage_errors(db):
        read_only(db)
        return db.get(Book, book_id, populate_existing=True)


def book_exists(db: Session, book_id: str) -> bool:
    with translate_storage_errors(db):
        read_only(db)
        found = db.execute(select(Book.id).where(Book.id == book_id)).first()
    return found is not None


def list_books(
    db: Session, *, limit: int = DEFAULT_LIMIT, offset: int = DEFAULT_OFFSET
) -> Page[Book]:
    """Newest first. ``total`` counts every book regardless of the window."""
    check_window(limit, offset)
    with translate_storage_errors(db):
        read_only(db)
        total = int(db.execute(select(func.count()).select_from(Book)).scalar_one())
        rows = (
            db.execute(
                select(Book)
                .order_by(Book.created_at.desc(), text("books.rowid DESC"))
                .limit(limit)
                .offset(offset)
                .execution_options(populate_existing=True)
            )
            .scalars()
            .all()
        )
    return Page(items=list(rows), total=total)


def _patch_values(patch: BookPatch, now: datetime) -> dict[str, Any]:
    values: dict[str, Any] = {
        name: getattr(patch, name)
        for name in BOOK_MUTABLE_COLUMNS
        if name in patch.model_fields_set
    }

    for name in TEXT_FIELDS:
        if name in values:
            if _is_blank(values[name]):
                raise ValidationError(f"{name} must not be empty", field=name)
            values[name] = values[name].strip()
    if "published_year" in values:
        _check_year(values["published_year"])

    if "status" in values:
        status = values["status"]
        if status is None:
            raise ValidationError("status must not be empty", field="status")
        values["status"] = BookStatus(status).value
        if values["status"] == BookStatus.checked_out.value:
            if "checked_out_at" not in values:
                values["checked_out_at"] = now
            elif values["checked_out_at"] is None:
                raise ValidationError(
                    "checked_out_at is required when status is checked_out",
                    field="checked_out_at",
                )
        else:
            if values.get("checked_out_at") is not None:
                raise ValidationError(
                    "checked_out_at must be empty when status is available",
                    field="checked_out_at",
                )
            values["checked_out_at"] = None
    elif "checked_out_at" in values:
        raise ValidationError(
            "checked_out_at can only be changed together with status",
            field="checked_out_at",
        )

    values["updated_at"] = now
    return values


def update_book(db: Session, book_id: str, patch: BookPatch) -> Book | None:
    """Apply the fields set on ``patch``; returns None when no book has ``book_id``."""
    values = _patch_values(patch, utcnow())

    with translate_storage_errors(db):
        begin_write(db)
        res = cast(
            CursorResult[Any],
            db.execute(
                update(Book)
                .where(Book.id == book_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            ),
        )
        if not res.rowcount:
            db.rollback()
            return None
        book = db.get(Book, book_id, populate_existing=True)
        db.commit()
    return book


def conditional_update_status(
    db: Session,
    *,
    book_id: str,
    expected_status: BookStatus,
    new_status: BookStatus,
    checked_out_at: datetime | None,
) -> int:
    """Compare-and-swap on ``status`` in a single UPDATE.

    Returns the affected row count (0 or 1). Does not commit; the caller owns
    the transaction.
    """
    stmt = (
        update(Book)
        .where(Book.id == book_id, Book.status == expected_status.value)
        .values(
            status=new_status.value,
            checked_out_at=checked_out_at,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    res = cast(CursorResult[Any], db.execute(stmt))
    return int(res.rowcount or 0)
