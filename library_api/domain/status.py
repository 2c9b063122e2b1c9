from __future__ import annotations

from enum import Enum


class BookStatus(str, Enum):
    available = "available"
    checked_out = "checked_out"


class CheckoutAction(str, Enum):
    checked_out = "checked_out"
    returned = "returned"
