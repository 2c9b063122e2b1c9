from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from library_api.domain.errors import ValidationError

T = TypeVar("T")

DEFAULT_LIMIT = 20
DEFAULT_OFFSET = 0


@dataclass(frozen=True)
class Page(Generic[T]):
    """One window of rows plus the unwindowed row count."""

    items: list[T]
    total: int


def check_window(limit: int, offset: int) -> None:
    if limit < 1:
        raise ValidationError("limit must be at least 1", field="limit")
    if offset < 0:
        raise ValidationError("offset must not be negative", field="offset")
