from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from library_api.domain.errors import DuplicateIsbnError, InternalError, LibraryError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def _is_isbn_violation(exc: IntegrityError) -> bool:
    # sqlite: "UNIQUE constraint failed: books.isbn"
    return "books.isbn" in str(exc.orig)


@contextmanager
def translate_storage_errors(db: Session) -> Iterator[None]:
    """Roll back on any failure and re-raise storage errors as domain errors.

    Nothing from sqlalchemy or the driver escapes this block.
    """
    try:
        yield
    except LibraryError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        if _is_isbn_violation(exc):
            raise DuplicateIsbnError() from exc
        logger.exception("Unexpected integrity error")
        raise InternalError() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Storage error")
        raise InternalError() from exc
