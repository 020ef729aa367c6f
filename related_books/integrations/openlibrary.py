"""URL builders for the OpenLibrary JSON API.

Path shapes here are the wire contract with the remote catalog; cached responses
are keyed by these exact strings.
"""
from __future__ import annotations

from urllib.parse import quote, quote_plus

OPENLIBRARY_BASE_URL = "https://openlibrary.org"
JSON_SUFFIX = ".json"

SEARCH_LIMIT = 5
RELATED_LIMIT = 10


def _base(base_url: str) -> str:
    return (base_url or OPENLIBRARY_BASE_URL).rstrip("/")


def edition_url(isbn: str, base_url: str = OPENLIBRARY_BASE_URL) -> str:
    return f"{_base(base_url)}/isbn/{quote(isbn, safe='')}{JSON_SUFFIX}"


def key_url(key: str, base_url: str = OPENLIBRARY_BASE_URL) -> str:
    """Record URL for any OpenLibrary key: "/works/OL1W" -> ".../works/OL1W.json"."""
    if key.startswith("http://") or key.startswith("https://"):
        return key
    return f"{_base(base_url)}{key}{JSON_SUFFIX}"


def works_listing_url(key: str, limit: int, base_url: str = OPENLIBRARY_BASE_URL) -> str:
    return f"{_base(base_url)}{key}/works.json?limit={int(limit)}"


def editions_url(work_key: str, limit: int = 1, base_url: str = OPENLIBRARY_BASE_URL) -> str:
    return f"{_base(base_url)}{work_key}/editions.json?limit={int(limit)}"


def field_search_url(field: str, term: str, limit: int = SEARCH_LIMIT, base_url: str = OPENLIBRARY_BASE_URL) -> str:
    return f'{_base(base_url)}/search.json?q={field}:"{quote_plus(term)}"&limit={int(limit)}'


def related_inside_url(subject: str, limit: int = RELATED_LIMIT, base_url: str = OPENLIBRARY_BASE_URL) -> str:
    return f"{_base(base_url)}/related/inside.json?subject={quote_plus(subject)}&limit={int(limit)}"
