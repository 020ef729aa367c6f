from __future__ import annotations

import logging
from typing import Any, Optional

from related_books.catalog import BookLookup
from related_books.core.models import BookRecord, WorkKey
from related_books.core.navigator import array_or_empty, has_field, parse_json, text_or_empty
from related_books.core.normalize import normalize_isbn, normalize_work_key, same_isbn
from related_books.core.parse import extract_edition_isbn
from related_books.integrations.http_client import Fetcher, FetchError
from related_books.integrations.openlibrary import OPENLIBRARY_BASE_URL, edition_url, editions_url, key_url

logger = logging.getLogger(__name__)


def fetch_json(fetcher: Fetcher, url: str) -> Optional[Any]:
    """GET + parse. Raises FetchError on transport failure, None on anything else."""
    return parse_json(fetcher.get(url))


def resolve_work_key(fetcher: Fetcher, isbn: str, *, base_url: str = OPENLIBRARY_BASE_URL) -> Optional[WorkKey]:
    isbn = normalize_isbn(isbn)
    if not isbn:
        return None
    try:
        edition = fetch_json(fetcher, edition_url(isbn, base_url))
    except FetchError as e:
        logger.warning("work key lookup failed | isbn=%s | err=%r", isbn, e.cause)
        return None
    works = array_or_empty(edition, "works")
    if not works:
        return None
    return text_or_empty(works[0], "key") or None


class WorkResolver:
    """Turns a work key into a concrete book (one edition's metadata)."""

    def __init__(self, fetcher: Fetcher, lookup: BookLookup, *, base_url: str = OPENLIBRARY_BASE_URL) -> None:
        self.fetcher = fetcher
        self.lookup = lookup
        self.base_url = base_url

    def fetch_work(self, work_key: str) -> Optional[Any]:
        key = normalize_work_key(work_key)
        if not key:
            return None
        return fetch_json(self.fetcher, key_url(key, self.base_url))

    def resolve(self, work_key: str, original_isbn: str) -> Optional[BookRecord]:
        key = normalize_work_key(work_key)
        if not key:
            return None
        try:
            work = self.fetch_work(key)
            if not has_field(work, "title"):
                return None

            editions = fetch_json(self.fetcher, editions_url(key, 1, self.base_url))
            entries = array_or_empty(editions, "entries")
            if not entries:
                return None

            isbn = extract_edition_isbn(entries[0])
            if not isbn or same_isbn(isbn, original_isbn):
                return None
        except FetchError as e:
            logger.warning("work resolve failed | work=%s | err=%r", key, e.cause)
            return None

        record = self.lookup.lookup(isbn)
        if record is not None:
            logger.debug("work resolved | work=%s | isbn=%s", key, record.isbn)
        return record
