"""Domain error taxonomy shared by repositories, services and the HTTP layer.

Every error carries an :class:`ErrorKind` discriminant so translators can map
on ``exc.kind`` instead of matching message text.
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar


class ErrorKind(str, Enum):
    validation = "validation_error"
    not_found = "not_found"
    conflict = "conflict"
    migration = "migration_error"
    internal = "internal_error"


class LibraryError(Exception):
    kind: ClassVar[ErrorKind] = ErrorKind.internal
    default_message: ClassVar[str] = "Library error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(LibraryError):
    kind = ErrorKind.validation
    default_message = "Invalid input"

    def __init__(self, message: str | None = None, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(LibraryError):
    kind = ErrorKind.not_found
    default_message = "Not found"


class BookNotFoundError(NotFoundError):
    default_message = "Book not found"


class ConflictError(LibraryError):
    kind = ErrorKind.conflict
    default_message = "Conflict"


class DuplicateIsbnError(ConflictError):
    default_message = "A book with this ISBN already exists"


class BookUnavailableError(ConflictError):
    """The book exists but is not in the status the transition requires."""

    default_message = "Book is unavailable"


class MigrationError(LibraryError):
    kind = ErrorKind.migration
    default_message = "Migration failed"

    def __init__(self, message: str | None = None, *, migration: str | None = None) -> None:
        super().__init__(message)
        self.migration = migration


class InternalError(LibraryError):
    kind = ErrorKind.internal
    default_message = "Internal server error"
