from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from related_books.core.models import BookRecord
from related_books.core.navigator import (
    array_or_empty,
    first_reference,
    has_field,
    references,
    text_items,
    text_or_empty,
)
from related_books.core.normalize import normalize_subject_term, work_key_from_url
from related_books.core.store import CandidateSet
from related_books.discovery.fanout import FANOUT_DEADLINE_S, FANOUT_MAX_WORKERS, run_with_deadline
from related_books.discovery.works import WorkResolver, fetch_json
from related_books.integrations.http_client import Fetcher, FetchError
from related_books.integrations.openlibrary import (
    OPENLIBRARY_BASE_URL,
    RELATED_LIMIT,
    SEARCH_LIMIT,
    field_search_url,
    key_url,
    related_inside_url,
    works_listing_url,
)

logger = logging.getLogger(__name__)

# Per-stage ceilings. They bound each stage independently of max_results.
SERIES_MEMBER_CAP = 3
AUTHOR_WORKS_LIMIT = 5
AUTHOR_HIT_CAP = 2
LINK_HIT_CAP = 2
SUBJECT_TERM_CAP = 3
SUBJECT_HITS_PER_TERM = 2
SUBJECT_FIELD_TERMS = 2
SUBJECT_FIELD_HITS = 2
SUBJECT_MIN_TERM_LEN = 3

SUBJECT_FIELDS = ("subject_people", "subject_places", "subject_times")


def _listing_keys(node: Any, *fields: str) -> List[str]:
    """Keys of the first non-empty listing among fields, in listing order."""
    for field in fields:
        entries = array_or_empty(node, field)
        if entries:
            return [k for k in (text_or_empty(e, "key") for e in entries) if k]
    return []


def _search_work_keys(node: Any) -> List[str]:
    return [k for k in (text_or_empty(d, "key") for d in array_or_empty(node, "docs")) if k.startswith("/works/")]


class Strategy:
    """
    One discovery stage. Stages are independent: each gets the parsed work and
    returns zero or more books, never raising for remote or data problems.
    """

    name = "strategy"

    def __init__(self, resolver: WorkResolver) -> None:
        self.resolver = resolver

    def applies(self, work: Any) -> bool:
        return True

    def run(self, work: Any, original_isbn: str, remaining: int) -> List[BookRecord]:
        raise NotImplementedError

    def _resolve_keys(self, keys: Iterable[str], original_isbn: str, cap: int) -> List[BookRecord]:
        found = CandidateSet(original_isbn)
        for key in keys:
            if found.size() >= cap:
                break
            record = self.resolver.resolve(key, original_isbn)
            if record is not None:
                found.add(record)
        return found.snapshot_values()


class SeriesStrategy(Strategy):
    name = "series"

    def __init__(
        self,
        fetcher: Fetcher,
        resolver: WorkResolver,
        *,
        base_url: str = OPENLIBRARY_BASE_URL,
        member_cap: int = SERIES_MEMBER_CAP,
    ) -> None:
        super().__init__(resolver)
        self.fetcher = fetcher
        self.base_url = base_url
        self.member_cap = member_cap

    def applies(self, work: Any) -> bool:
        return has_field(work, "series")

    def _members(self, series_ref: str, original_isbn: str) -> List[BookRecord]:
        url = key_url(series_ref, self.base_url)
        try:
            listing = fetch_json(self.fetcher, url)
        except FetchError as e:
            logger.warning("series listing failed | url=%s | err=%r", url, e.cause)
            return []
        keys = _listing_keys(listing, "works", "entries")
        logger.debug("series listing | url=%s | members=%s", url, len(keys))
        return self._resolve_keys(keys, original_isbn, self.member_cap)

    def run(self, work: Any, original_isbn: str, remaining: int) -> List[BookRecord]:
        out: List[BookRecord] = []
        for ref in references(work.get("series")):
            out.extend(self._members(ref, original_isbn))
        return out


class AuthorStrategy(Strategy):
    name = "author"

    def __init__(
        self,
        fetcher: Fetcher,
        resolver: WorkResolver,
        *,
        base_url: str = OPENLIBRARY_BASE_URL,
        works_limit: int = AUTHOR_WORKS_LIMIT,
        hit_cap: int = AUTHOR_HIT_CAP,
    ) -> None:
        super().__init__(resolver)
        self.fetcher = fetcher
        self.base_url = base_url
        self.works_limit = works_limit
        self.hit_cap = hit_cap

    def applies(self, work: Any) -> bool:
        return bool(array_or_empty(work, "authors"))

    def run(self, work: Any, original_isbn: str, remaining: int) -> List[BookRecord]:
        author_key = first_reference(array_or_empty(work, "authors"))
        if not author_key:
            return []
        listing = fetch_json(self.fetcher, works_listing_url(author_key, self.works_limit, self.base_url))
        keys = _listing_keys(listing, "entries")
        logger.debug("author works | author=%s | works=%s", author_key, len(keys))
        return self._resolve_keys(keys, original_isbn, self.hit_cap)


class LinkedWorksStrategy(Strategy):
    name = "links"

    def __init__(self, resolver: WorkResolver, *, hit_cap: int = LINK_HIT_CAP) -> None:
        super().__init__(resolver)
        self.hit_cap = hit_cap

    def applies(self, work: Any) -> bool:
        return bool(array_or_empty(work, "links"))

    @staticmethod
    def related_work_keys(work: Any) -> List[str]:
        keys: List[str] = []
        for link in array_or_empty(work, "links"):
            if not (has_field(link, "title") and has_field(link, "url")):
                continue
            if text_or_empty(link, "type").strip().lower() != "related":
                continue
            key = work_key_from_url(text_or_empty(link, "url"))
            if key:
                keys.append(key)
        return keys

    def run(self, work: Any, original_isbn: str, remaining: int) -> List[BookRecord]:
        return self._resolve_keys(self.related_work_keys(work), original_isbn, self.hit_cap)


def pick_subject_terms(work: Any, cap: int = SUBJECT_TERM_CAP) -> List[str]:
    terms = [normalize_subject_term(s) for s in text_items(array_or_empty(work, "subjects"))]
    terms = [t for t in terms if t]
    filtered = [t for t in terms if len(t) > SUBJECT_MIN_TERM_LEN]
    if not filtered:
        filtered = terms
    return filtered[:cap]


class SubjectStrategy(Strategy):
    """
    Weakest and slowest signal. Specialized subject fields are searched first on
    the calling thread; free-text subjects then fan out to a bounded pool that
    is given at most deadline_s.
    """

    name = "subjects"

    def __init__(
        self,
        fetcher: Fetcher,
        resolver: WorkResolver,
        *,
        base_url: str = OPENLIBRARY_BASE_URL,
        deadline_s: float = FANOUT_DEADLINE_S,
        max_workers: int = FANOUT_MAX_WORKERS,
        term_cap: int = SUBJECT_TERM_CAP,
        hits_per_term: int = SUBJECT_HITS_PER_TERM,
    ) -> None:
        super().__init__(resolver)
        self.fetcher = fetcher
        self.base_url = base_url
        self.deadline_s = deadline_s
        self.max_workers = max_workers
        self.term_cap = term_cap
        self.hits_per_term = hits_per_term

    def applies(self, work: Any) -> bool:
        return any(has_field(work, f) for f in SUBJECT_FIELDS + ("subjects",))

    def _search(self, url: str, original_isbn: str, cap: int) -> List[BookRecord]:
        node = fetch_json(self.fetcher, url)
        return self._resolve_keys(_search_work_keys(node), original_isbn, cap)

    def search_field(self, work: Any, field: str, original_isbn: str) -> List[BookRecord]:
        found = CandidateSet(original_isbn)
        terms = text_items(array_or_empty(work, field))[:SUBJECT_FIELD_TERMS]
        for term in terms:
            if found.size() >= SUBJECT_FIELD_HITS:
                break
            url = field_search_url(field, term, SEARCH_LIMIT, self.base_url)
            try:
                found.extend(self._search(url, original_isbn, SUBJECT_FIELD_HITS - found.size()))
            except FetchError as e:
                logger.warning("subject field search failed | field=%s | term=%s | err=%r", field, term, e.cause)
        return found.snapshot_values()

    def search_term(self, term: str, original_isbn: str) -> List[BookRecord]:
        """One fan-out task: related-works endpoint, then plain subject search."""
        out: List[BookRecord] = []
        try:
            related = fetch_json(self.fetcher, related_inside_url(term, RELATED_LIMIT, self.base_url))
            keys = _listing_keys(related, "works", "matches")
            out = self._resolve_keys(keys, original_isbn, self.hits_per_term)
            if not out:
                url = field_search_url("subject", term, SEARCH_LIMIT, self.base_url)
                out = self._search(url, original_isbn, self.hits_per_term)
        except FetchError as e:
            logger.warning("subject search failed | term=%s | err=%r", term, e.cause)
        return out

    def run(self, work: Any, original_isbn: str, remaining: int) -> List[BookRecord]:
        found = CandidateSet(original_isbn)
        if remaining <= 0:
            return []

        for field in SUBJECT_FIELDS:
            if found.size() >= remaining:
                break
            if has_field(work, field):
                found.extend(self.search_field(work, field, original_isbn))

        terms = pick_subject_terms(work, self.term_cap)
        if found.size() < remaining and terms:
            embedded = _listing_keys(work, "subject_works")
            if embedded:
                found.extend(self._resolve_keys(embedded, original_isbn, remaining - found.size()))

        if found.size() < remaining and terms:
            outcomes = run_with_deadline(
                terms,
                lambda t: self.search_term(t, original_isbn),
                deadline_s=self.deadline_s,
                max_workers=self.max_workers,
                thread_name_prefix="subject-fanout",
            )
            for outcome in outcomes:
                if found.size() >= remaining:
                    break
                if outcome.completed and outcome.result:
                    found.extend(outcome.result)

        return found.top(remaining)


def default_strategies(
    fetcher: Fetcher,
    resolver: WorkResolver,
    *,
    base_url: str = OPENLIBRARY_BASE_URL,
    deadline_s: float = FANOUT_DEADLINE_S,
    max_workers: int = FANOUT_MAX_WORKERS,
) -> List[Strategy]:
    """Cascade order is priority order: series, author, direct links, subjects."""
    return [
        SeriesStrategy(fetcher, resolver, base_url=base_url),
        AuthorStrategy(fetcher, resolver, base_url=base_url),
        LinkedWorksStrategy(resolver),
        SubjectStrategy(fetcher, resolver, base_url=base_url, deadline_s=deadline_s, max_workers=max_workers),
    ]


def strategy_names(strategies: Optional[Iterable[Strategy]]) -> List[str]:
    return [s.name for s in strategies or []]
