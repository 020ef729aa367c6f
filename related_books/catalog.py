from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, Optional, Protocol

from related_books.core.models import BookRecord
from related_books.core.navigator import parse_json
from related_books.core.normalize import isbn_identity, normalize_isbn
from related_books.core.parse import author_name, author_refs, parse_edition
from related_books.integrations.http_client import Fetcher, FetchError
from related_books.integrations.openlibrary import OPENLIBRARY_BASE_URL, edition_url, key_url

logger = logging.getLogger(__name__)


class CatalogLookup(Protocol):
    """Local book store consulted before the network."""

    def find_by_isbn(self, isbn: str) -> Optional[BookRecord]:
        ...


class EmptyCatalog:
    def find_by_isbn(self, isbn: str) -> Optional[BookRecord]:
        return None


class InMemoryCatalog:
    """
    Thread-safe ISBN -> BookRecord map.
    Lookups accept either ISBN form (10 or 13 digits).
    """

    def __init__(self, records: Optional[Iterable[BookRecord]] = None) -> None:
        self._lock = threading.Lock()
        self._rows: Dict[str, BookRecord] = {}
        for r in records or []:
            self.save(r)

    def save(self, record: BookRecord) -> None:
        key = isbn_identity(record.isbn)
        if not key:
            return
        with self._lock:
            self._rows[key] = record

    def find_by_isbn(self, isbn: str) -> Optional[BookRecord]:
        with self._lock:
            return self._rows.get(isbn_identity(isbn))

    def size(self) -> int:
        with self._lock:
            return len(self._rows)


class BookLookup:
    """
    Full metadata lookup for one ISBN: local catalog first, then the
    OpenLibrary edition record.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        catalog: Optional[CatalogLookup] = None,
        *,
        base_url: str = OPENLIBRARY_BASE_URL,
        resolve_author_keys: bool = True,
    ) -> None:
        self.fetcher = fetcher
        self.catalog = catalog or EmptyCatalog()
        self.base_url = base_url
        self.resolve_author_keys = resolve_author_keys

    def _from_catalog(self, isbn: str) -> Optional[BookRecord]:
        try:
            return self.catalog.find_by_isbn(isbn)
        except Exception as e:
            logger.warning("catalog lookup failed | isbn=%s | err=%r", isbn, e)
            return None

    def _author_name(self, key: str) -> str:
        try:
            node = parse_json(self.fetcher.get(key_url(key, self.base_url)))
        except FetchError:
            return ""
        return author_name(node)

    def lookup(self, isbn: str) -> Optional[BookRecord]:
        isbn = normalize_isbn(isbn)
        if not isbn:
            return None

        local = self._from_catalog(isbn)
        if local is not None:
            logger.debug("catalog hit | isbn=%s", isbn)
            return local

        try:
            body = self.fetcher.get(edition_url(isbn, self.base_url))
        except FetchError as e:
            logger.warning("edition lookup failed | isbn=%s | err=%r", isbn, e.cause)
            return None
        edition = parse_json(body)
        if not isinstance(edition, dict):
            return None

        record = parse_edition(edition, isbn)
        if self.resolve_author_keys:
            for name, key in author_refs(edition):
                if not name and key:
                    record = record.with_author(self._author_name(key))
        return record
