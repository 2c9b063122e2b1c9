from __future__ import annotations

import re

_digits_or_x = re.compile(r"[^0-9Xx]")
_separators = re.compile(r"[\s-]+")


def normalize_isbn(raw: str) -> str:
    """Strip hyphens and spaces, upper-case a trailing ISBN-10 ``x``.

    Returns an empty string when anything other than digits, ``X``,
    hyphens or whitespace is present, so callers can treat it as invalid.
    """
    cleaned = _separators.sub("", raw or "")
    if _digits_or_x.search(cleaned):
        return ""
    return cleaned.upper()


def _valid_isbn10(s: str) -> bool:
    if not s[:9].isdigit():
        return False
    check = s[9]
    if check == "X":
        check_val = 10
    elif check.isdigit():
        check_val = int(check)
    else:
        return False
    total = sum(i * int(ch) for i, ch in enumerate(s[:9], 1))
    return (total + 10 * check_val) % 11 == 0


def _valid_isbn13(s: str) -> bool:
    if not s.isdigit():
        return False
    total = sum((1 if i % 2 == 0 else 3) * int(ch) for i, ch in enumerate(s[:12]))
    return (10 - total % 10) % 10 == int(s[12])


def is_valid_isbn(raw: str | None) -> bool:
    s = normalize_isbn(raw or "")
    if len(s) == 10:
        return _valid_isbn10(s)
    if len(s) == 13:
        return _valid_isbn13(s)
    return False
