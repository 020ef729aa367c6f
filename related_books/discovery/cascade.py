# related_books/discovery/cascade.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from related_books.catalog import BookLookup, CatalogLookup
from related_books.config import ResolverConfig
from related_books.core.models import BookRecord, WorkKey
from related_books.core.normalize import normalize_isbn
from related_books.core.store import CandidateSet
from related_books.discovery.fanout import FANOUT_DEADLINE_S, FANOUT_MAX_WORKERS
from related_books.discovery.strategies import Strategy, default_strategies, strategy_names
from related_books.discovery.works import WorkResolver, resolve_work_key
from related_books.integrations.http_client import Fetcher, FetchError, TokenBucket
from related_books.integrations.openlibrary import OPENLIBRARY_BASE_URL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageReport:
    name: str
    ran: bool
    found: int = 0
    added: int = 0
    elapsed_s: float = 0.0
    error: str = ""


@dataclass(frozen=True)
class ResolutionReport:
    isbn: str
    max_results: int
    work_key: Optional[WorkKey]
    results: Tuple[BookRecord, ...]
    stages: Tuple[StageReport, ...]
    elapsed_s: float = 0.0


class RelatedWorkResolver:
    """
    Related-book lookup for one ISBN.

    Resolves the OpenLibrary work behind the ISBN, then runs the strategy
    cascade (series, author, direct links, subjects) on the calling thread,
    one stage at a time, while fewer than max_results books are known. Output
    order is discovery order. Expected failures (unknown ISBN, network errors,
    bad payloads) produce an empty or partial list, never an exception.

    The fetcher, and with it the request cache, lives as long as the resolver,
    so repeated calls reuse earlier responses.
    """

    def __init__(
        self,
        fetcher: Optional[Fetcher] = None,
        catalog: Optional[CatalogLookup] = None,
        *,
        base_url: str = OPENLIBRARY_BASE_URL,
        deadline_s: float = FANOUT_DEADLINE_S,
        max_workers: int = FANOUT_MAX_WORKERS,
        strategies: Optional[Sequence[Strategy]] = None,
    ) -> None:
        self.fetcher = fetcher or Fetcher()
        self.base_url = base_url
        self.lookup = BookLookup(self.fetcher, catalog, base_url=base_url)
        self.works = WorkResolver(self.fetcher, self.lookup, base_url=base_url)
        if strategies is None:
            strategies = default_strategies(
                self.fetcher,
                self.works,
                base_url=base_url,
                deadline_s=deadline_s,
                max_workers=max_workers,
            )
        self.strategies: List[Strategy] = list(strategies)

    @classmethod
    def from_config(cls, config: ResolverConfig, catalog: Optional[CatalogLookup] = None) -> "RelatedWorkResolver":
        limiter = TokenBucket(config.rate_per_sec, config.burst) if config.rate_per_sec > 0 else None
        fetcher = Fetcher(
            connect_timeout_ms=config.connect_timeout_ms,
            read_timeout_ms=config.read_timeout_ms,
            use_cache=config.use_cache,
            rate_limiter=limiter,
            user_agent=config.user_agent,
        )
        return cls(
            fetcher,
            catalog,
            base_url=config.base_url,
            deadline_s=config.fanout_deadline_s,
            max_workers=config.fanout_workers,
        )

    def resolve_related(self, isbn: str, max_results: int) -> List[BookRecord]:
        return list(self.resolve_with_report(isbn, max_results).results)

    def resolve_with_report(self, isbn: str, max_results: int) -> ResolutionReport:
        isbn = normalize_isbn(isbn)
        try:
            max_results = int(max_results)
        except (TypeError, ValueError):
            max_results = 0
        if not isbn or max_results <= 0:
            return ResolutionReport(isbn=isbn, max_results=max(0, max_results), work_key=None, results=(), stages=())

        started = time.monotonic()
        try:
            report = self._resolve(isbn, max_results)
        except Exception:
            logger.exception("related lookup failed | isbn=%s", isbn)
            report = ResolutionReport(isbn=isbn, max_results=max_results, work_key=None, results=(), stages=())
        elapsed = time.monotonic() - started
        logger.info(
            "related lookup done | isbn=%s | results=%s | elapsed=%.2fs",
            isbn,
            len(report.results),
            elapsed,
        )
        return replace(report, elapsed_s=elapsed)

    def _resolve(self, isbn: str, max_results: int) -> ResolutionReport:
        logger.info("related lookup start | isbn=%s | max=%s", isbn, max_results)
        work_key = resolve_work_key(self.fetcher, isbn, base_url=self.base_url)
        if not work_key:
            logger.info("no work key | isbn=%s", isbn)
            return ResolutionReport(isbn=isbn, max_results=max_results, work_key=None, results=(), stages=())
        logger.info("work key | isbn=%s | work=%s", isbn, work_key)

        try:
            work = self.works.fetch_work(work_key)
        except FetchError as e:
            logger.warning("work fetch failed | work=%s | err=%r", work_key, e.cause)
            work = None
        if not isinstance(work, dict):
            logger.warning("work unavailable | work=%s", work_key)
            return ResolutionReport(isbn=isbn, max_results=max_results, work_key=work_key, results=(), stages=())

        candidates = CandidateSet(isbn)
        stages: List[StageReport] = []
        logger.debug("cascade | stages=%s", strategy_names(self.strategies))
        for stage in self.strategies:
            if candidates.size() >= max_results:
                logger.debug("stage skipped (quota met) | stage=%s", stage.name)
                stages.append(StageReport(name=stage.name, ran=False))
                continue
            if not stage.applies(work):
                logger.debug("stage skipped (no data) | stage=%s", stage.name)
                stages.append(StageReport(name=stage.name, ran=False))
                continue
            stages.append(self._run_stage(stage, work, isbn, max_results, candidates))

        return ResolutionReport(
            isbn=isbn,
            max_results=max_results,
            work_key=work_key,
            results=tuple(candidates.top(max_results)),
            stages=tuple(stages),
        )

    def _run_stage(
        self,
        stage: Strategy,
        work: dict,
        isbn: str,
        max_results: int,
        candidates: CandidateSet,
    ) -> StageReport:
        remaining = max_results - candidates.size()
        t0 = time.monotonic()
        error = ""
        try:
            found = stage.run(work, isbn, remaining) or []
        except Exception as e:
            # A broken stage contributes nothing; later stages still run.
            logger.warning("stage failed | stage=%s | isbn=%s | err=%r", stage.name, isbn, e, exc_info=True)
            found = []
            error = repr(e)
        added = candidates.extend(found)
        elapsed = time.monotonic() - t0
        logger.info(
            "stage done | stage=%s | found=%s | added=%s | total=%s | elapsed=%.2fs",
            stage.name,
            len(found),
            added,
            candidates.size(),
            elapsed,
        )
        return StageReport(name=stage.name, ran=True, found=len(found), added=added, elapsed_s=elapsed, error=error)
