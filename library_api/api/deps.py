from __future__ import annotations

from dataclasses import dataclass

from fastapi import Query
from library_api.crud.pagination import DEFAULT_LIMIT

MAX_PAGE_LIMIT = 100


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def _as_int(raw: str | None) -> int | None:
    try:
        return int(raw) if raw is not None else None
    except ValueError:
        return None


def page_params(
    page: str | None = Query(None, description="1-based page number"),
    limit: str | None = Query(None, description=f"Items per page (1-{MAX_PAGE_LIMIT})"),
) -> PageParams:
    # Out-of-range or non-numeric values fall back to the defaults.
    p = _as_int(page)
    n = _as_int(limit)
    return PageParams(
        page=p if p is not None and p >= 1 else 1,
        limit=n if n is not None and 1 <= n <= MAX_PAGE_LIMIT else DEFAULT_LIMIT,
    )
