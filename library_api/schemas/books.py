from __future__ import annotations

from datetime import date, datetime

from library_api.domain.isbn import is_valid_isbn
from library_api.domain.status import BookStatus
from pydantic import BaseModel, ConfigDict, Field, field_validator

MIN_PUBLISHED_YEAR = 1000

# Columns update_book may write. Order is the order of the SET clause.
BOOK_MUTABLE_COLUMNS: tuple[str, ...] = (
    "isbn",
    "title",
    "author",
    "published_year",
    "status",
    "checked_out_at",
)


class BookPatch(BaseModel):
    """Partial update of a book.

    Only fields explicitly set (``model_fields_set``) are written, so
    ``checked_out_at=None`` clears the column while omitting it leaves it alone.
    """

    model_config = ConfigDict(extra="forbid")

    isbn: str | None = None
    title: str | None = None
    author: str | None = None
    published_year: int | None = None
    status: BookStatus | None = None
    checked_out_at: datetime | None = None


def check_isbn(v: str | None) -> str | None:
    if v is None:
        return v
    if not is_valid_isbn(v):
        raise ValueError("ISBN must be a valid ISBN-10 or ISBN-13")
    return v.strip()


def check_published_year(v: int | None) -> int | None:
    if v is None:
        return v
    current = date.today().year
    if not MIN_PUBLISHED_YEAR <= v <= current:
        raise ValueError(
            f"Published year must be an integer between {MIN_PUBLISHED_YEAR} and the current year"
        )
    return v


class BookCreateIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    author: str = Field(min_length=1, max_length=255)
    isbn: str
    published_year: int

    @field_validator("title", "author", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("isbn")
    @classmethod
    def validate_isbn(cls, v):
        return check_isbn(v)

    @field_validator("published_year")
    @classmethod
    def validate_published_year(cls, v):
        return check_published_year(v)


class BookUpdateIn(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    author: str | None = Field(default=None, min_length=1, max_length=255)
    isbn: str | None = None
    published_year: int | None = None

    @field_validator("title", "author", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("isbn")
    @classmethod
    def validate_isbn(cls, v):
        return check_isbn(v)

    @field_validator("published_year")
    @classmethod
    def validate_published_year(cls, v):
        return check_published_year(v)


class BookOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    author: str
    isbn: str
    published_year: int
    status: BookStatus
    checked_out_at: datetime | None
    created_at: datetime
    updated_at: datetime


class HistoryEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    book_id: str
    action: str
    timestamp: datetime


class PageOut(BaseModel):
    page: int
    limit: int
    total: int


class BookListOut(BaseModel):
    data: list[BookOut]
    pagination: PageOut


class HistoryListOut(BaseModel):
    data: list[HistoryEntryOut]
    pagination: PageOut
