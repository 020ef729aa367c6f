from __future__ import annotations

import threading
from typing import Dict, Iterable, List

from related_books.core.models import BookRecord
from related_books.core.normalize import isbn_identity


class CandidateSet:
    """
    Insertion-ordered, ISBN-unique collection of related books.

    Insertion order is discovery order and is the ranking handed to callers.
    The query ISBN is never admitted.
    """

    def __init__(self, exclude_isbn: str = "") -> None:
        self._lock = threading.Lock()
        self._exclude = isbn_identity(exclude_isbn)
        self._rows: Dict[str, BookRecord] = {}

    def add(self, record: BookRecord) -> bool:
        key = isbn_identity(record.isbn) if record else ""
        if not key or key == self._exclude:
            return False
        with self._lock:
            if key in self._rows:
                return False
            self._rows[key] = record
            return True

    def extend(self, records: Iterable[BookRecord]) -> int:
        added = 0
        for r in records:
            if self.add(r):
                added += 1
        return added

    def size(self) -> int:
        with self._lock:
            return len(self._rows)

    def top(self, n: int) -> List[BookRecord]:
        if n <= 0:
            return []
        with self._lock:
            return list(self._rows.values())[:n]

    def snapshot_values(self) -> List[BookRecord]:
        with self._lock:
            return list(self._rows.values())
