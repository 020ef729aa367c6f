# related_books/core/parse.py
from __future__ import annotations

import re
from typing import Any, List, Optional, Tuple

from related_books.core.models import BookRecord
from related_books.core.navigator import array_or_empty, extract_reference, text_or_empty
from related_books.core.normalize import normalize_isbn

_WS_RE = re.compile(r"\s+")


def _clean_text(text: str) -> str:
    if not text:
        return ""
    return _WS_RE.sub(" ", str(text)).strip()


def _first_text(values: List[Any]) -> str:
    if not values:
        return ""
    first = values[0]
    if isinstance(first, dict):
        return _clean_text(text_or_empty(first, "name"))
    if isinstance(first, (list, tuple)):
        return ""
    return _clean_text(str(first))


def extract_edition_isbn(edition: Any) -> Optional[str]:
    """First ISBN-13 of an edition, else its first ISBN-10."""
    for field in ("isbn_13", "isbn_10"):
        values = array_or_empty(edition, field)
        if values:
            isbn = normalize_isbn(str(values[0]))
            if isbn:
                return isbn
    return None


def author_refs(edition: Any) -> List[Tuple[str, str]]:
    """
    (name, key) pairs for the edition's authors.

    Entries may carry a name directly or only a key such as "/authors/OL1A";
    name is "" for the latter so the caller can resolve it.
    """
    out: List[Tuple[str, str]] = []
    for entry in array_or_empty(edition, "authors"):
        if isinstance(entry, str):
            out.append((_clean_text(entry), ""))
            continue
        name = _clean_text(text_or_empty(entry, "name"))
        key = ""
        if not name:
            key = extract_reference(entry) or ""
        if name or key:
            out.append((name, key))
    return out


def parse_edition(edition: Any, isbn: str) -> BookRecord:
    """
    Map an OpenLibrary edition payload (/isbn/{isbn}.json) to a BookRecord.

    Only names present on the edition are attached; key-only authors are left
    to the caller.
    """
    record = BookRecord(
        isbn=normalize_isbn(isbn),
        title=_clean_text(text_or_empty(edition, "title")),
        publisher=_first_text(array_or_empty(edition, "publishers")),
        date_published=_clean_text(text_or_empty(edition, "publish_date")),
    )
    for name, _key in author_refs(edition):
        record = record.with_author(name)
    return record


def author_name(author: Any) -> str:
    return _clean_text(text_or_empty(author, "name") or text_or_empty(author, "personal_name"))
