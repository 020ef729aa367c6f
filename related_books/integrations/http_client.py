from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

import requests

from related_books.core.stats_tracker import FetchStatsTracker

DEFAULT_CONNECT_TIMEOUT_MS = 5000
DEFAULT_READ_TIMEOUT_MS = 5000
DEFAULT_USER_AGENT = "related-books/1.0"

logger = logging.getLogger(__name__)


def _safe_body_preview(resp: requests.Response, limit: int = 300) -> str:
    try:
        text = resp.text or ""
    except Exception:
        return "<unavailable>"
    text = text.replace("\r", " ").replace("\n", " ").strip()
    if len(text) > limit:
        return text[:limit].rstrip() + "..."
    return text


class FetchError(RuntimeError):
    """Connection-level failure: DNS, refused connection, timeout."""

    def __init__(self, url: str, cause: BaseException) -> None:
        super().__init__(f"Request failed: {url} error={cause!r}")
        self.url = url
        self.cause = cause


class TokenBucket:
    def __init__(self, rate_per_sec: float, burst: int) -> None:
        self.rate = max(0.01, float(rate_per_sec))
        self.capacity = max(1, int(burst))
        self.tokens = float(self.capacity)
        self.lock = threading.Lock()
        self.last = time.monotonic()

    def take(self, n: float = 1.0) -> None:
        while True:
            with self.lock:
                now = time.monotonic()
                elapsed = now - self.last
                self.last = now
                self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
                if self.tokens >= n:
                    self.tokens -= n
                    return
                need = (n - self.tokens) / self.rate
            time.sleep(min(0.25, max(0.01, need)))


def make_session(user_agent: str = DEFAULT_USER_AGENT) -> requests.Session:
    s = requests.Session()
    s.headers.update({
        "Accept": "application/json",
        "User-Agent": user_agent,
    })
    return s


class Fetcher:
    """
    Single-operation HTTP client: GET a URL, return its body.

    Non-200 responses come back as None; only transport failures raise
    (FetchError). Successful non-empty bodies are cached by exact URL for the
    lifetime of the instance unless use_cache is turned off. Each thread gets
    its own requests.Session.
    """

    def __init__(
        self,
        *,
        connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS,
        read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS,
        use_cache: bool = True,
        rate_limiter: Optional[TokenBucket] = None,
        session_factory: Optional[Callable[[], requests.Session]] = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.connect_timeout_ms = int(connect_timeout_ms)
        self.read_timeout_ms = int(read_timeout_ms)
        self.use_cache = bool(use_cache)
        self.rate_limiter = rate_limiter
        self.session_factory = session_factory or (lambda: make_session(user_agent))
        self.stats = FetchStatsTracker()

        self._cache: Dict[str, str] = {}
        self._cache_lock = threading.Lock()
        self._local = threading.local()

    @property
    def timeout(self) -> tuple:
        return (self.connect_timeout_ms / 1000.0, self.read_timeout_ms / 1000.0)

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self.session_factory()
            self._local.session = session
        return session

    def cache_size(self) -> int:
        with self._cache_lock:
            return len(self._cache)

    def cached(self, url: str) -> Optional[str]:
        with self._cache_lock:
            return self._cache.get(url)

    def get(self, url: str) -> Optional[str]:
        if self.use_cache:
            hit = self.cached(url)
            if hit is not None:
                self.stats.inc_cache_hits()
                logger.debug("cache hit | url=%s", url)
                return hit

        if self.rate_limiter is not None:
            self.rate_limiter.take(1.0)

        logger.debug("request | method=GET | url=%s | timeout=%s", url, self.timeout)
        self.stats.inc_requests()
        try:
            r = self._session().get(url, timeout=self.timeout)
        except requests.RequestException as e:
            self.stats.inc_transport_errors()
            logger.warning("request error | url=%s | err=%r", url, e)
            raise FetchError(url, e) from e

        if r.status_code != 200:
            self.stats.inc_non_success()
            logger.warning(
                "non-success response | status=%s | url=%s | body=%s",
                r.status_code,
                url,
                _safe_body_preview(r),
            )
            return None

        body = r.text or ""
        if self.use_cache and body:
            # Racing workers may both store the same URL; last write wins.
            with self._cache_lock:
                self._cache[url] = body
            logger.debug("cache store | url=%s | len=%s", url, len(body))
        return body
