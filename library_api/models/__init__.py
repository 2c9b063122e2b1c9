from library_api.models.base import Base
from library_api.models.book import Book
from library_api.models.checkout_history import CheckoutHistoryEntry
from library_api.models.migration_record import MigrationRecord


__all__ = [
    "Base",
    "Book",
    "CheckoutHistoryEntry",
    "MigrationRecord",
]
