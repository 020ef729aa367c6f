from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Tuple

# Opaque OpenLibrary work identifier, e.g. "/works/OL45804W".
WorkKey = str


@dataclass(frozen=True, eq=False)
class BookRecord:
    """
    A book as returned to callers.

    Identity is the ISBN: two records with equal ISBN compare equal and hash the
    same, whatever their other fields say.
    """

    isbn: str
    title: str = ""
    publisher: str = ""
    date_published: str = ""
    authors: Tuple[str, ...] = ()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BookRecord):
            return NotImplemented
        return self.isbn == other.isbn

    def __hash__(self) -> int:
        return hash(self.isbn)

    def with_author(self, name: str) -> "BookRecord":
        name = (name or "").strip()
        if not name or name in self.authors:
            return self
        return replace(self, authors=self.authors + (name,))


@dataclass(frozen=True)
class FetchStatsSnapshot:
    requests_made: int
    cache_hits: int
    transport_errors: int
    non_success: int
