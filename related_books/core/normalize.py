from __future__ import annotations

import re
from typing import Optional

from related_books.core.models import WorkKey

ISBN10_RE = re.compile(r"^\d{9}[\dX]$")

_WORKS_PREFIX = "/works/"


def normalize_isbn(x: str) -> str:
    x = (x or "").strip()
    x = re.sub(r"[^0-9Xx]", "", x).upper()
    return x


def is_valid_isbn10(isbn10: str) -> bool:
    isbn10 = normalize_isbn(isbn10)
    if not ISBN10_RE.match(isbn10):
        return False
    total = 0
    for i, ch in enumerate(isbn10[:9], start=1):
        total += i * int(ch)
    check = isbn10[9]
    check_val = 10 if check == "X" else int(check)
    total += 10 * check_val
    return total % 11 == 0


def isbn10_to_isbn13(isbn10: str) -> str:
    isbn10 = normalize_isbn(isbn10)
    if not is_valid_isbn10(isbn10):
        return ""
    core = "978" + isbn10[:9]
    digits = [int(c) for c in core]
    s = 0
    for i in range(12):
        s += digits[i] * (1 if i % 2 == 0 else 3)
    check = (10 - (s % 10)) % 10
    return f"{core}{check}"


def isbn_identity(isbn: str) -> str:
    """
    Key used to decide whether two ISBNs name the same book.

    A valid ISBN-10 maps to its ISBN-13 form; anything else is only normalized,
    so unchecked or malformed identifiers still compare by their digits.
    """
    norm = normalize_isbn(isbn)
    if len(norm) == 10:
        return isbn10_to_isbn13(norm) or norm
    return norm


def same_isbn(a: str, b: str) -> bool:
    ka = isbn_identity(a)
    return bool(ka) and ka == isbn_identity(b)


def normalize_work_key(key: str) -> Optional[WorkKey]:
    key = (key or "").strip()
    if not key:
        return None
    if key.startswith(_WORKS_PREFIX):
        return key
    return _WORKS_PREFIX + key.lstrip("/")


def work_key_from_url(url: str) -> Optional[WorkKey]:
    """Cut "/works/OL1W" out of a full work URL, dropping any query string."""
    url = (url or "").strip()
    idx = url.find(_WORKS_PREFIX)
    if idx == -1:
        return None
    path = url[idx:]
    q = path.find("?")
    if q != -1:
        path = path[:q]
    return path or None


def normalize_subject_term(s: str) -> str:
    return (s or "").strip()
