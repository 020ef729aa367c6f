from __future__ import annotations

import threading

from related_books.core.models import FetchStatsSnapshot


class FetchStatsTracker:
    """
    Thread-safe counters for one Fetcher.

    Rule: All mutation is done under one lock.
    Fan-out workers share the tracker with the orchestrator thread.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requests_made = 0
        self._cache_hits = 0
        self._transport_errors = 0
        self._non_success = 0

    def inc_requests(self, n: int = 1) -> None:
        with self._lock:
            self._requests_made += int(n)

    def inc_cache_hits(self, n: int = 1) -> None:
        with self._lock:
            self._cache_hits += int(n)

    def inc_transport_errors(self, n: int = 1) -> None:
        with self._lock:
            self._transport_errors += int(n)

    def inc_non_success(self, n: int = 1) -> None:
        with self._lock:
            self._non_success += int(n)

    def snapshot(self) -> FetchStatsSnapshot:
        with self._lock:
            return FetchStatsSnapshot(
                requests_made=self._requests_made,
                cache_hits=self._cache_hits,
                transport_errors=self._transport_errors,
                non_success=self._non_success,
            )

    def snapshot_dict(self) -> dict:
        snap = self.snapshot()
        return {
            "requests_made": snap.requests_made,
            "cache_hits": snap.cache_hits,
            "transport_errors": snap.transport_errors,
            "non_success": snap.non_success,
        }
