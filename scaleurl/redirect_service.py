"""Redirect resolution: rate limit, cache-aside lookup, visit hand-off.

Flow Diagram: resolve(short_code)
==================================
::
    ┌─────────────┐
    │ Rate limiter │
    │ check        │
    └──────┬──────┘
    REJECTED? ── YES ──▶ TooManyRequests (no cache, no store, no event)
           │ NO / UNAVAILABLE (fail open)
           ▼
    ┌─────────────┐
    │ Cache get    │
    └──────┬──────┘
    HIT?  │
    ┌─────┴──────────────┐
    │ NO / UNAVAILABLE    │ YES
    ▼                     ▼
┌─────────┐          ┌─────────┐
│ Store   │          │ Enqueue │
│ lookup  │          │ visit   │
└────┬────┘          └────┬────┘
 FOUND? │                 ▼
  NO ───┼──▶ NotFound   return cached URL
        ▼ YES
┌─────────┐
│ Cache   │
│ set     │
└────┬────┘
     ▼
┌─────────┐
│ Enqueue │
│ visit   │
└────┬────┘
     ▼
  return URL

Key Behaviours
===============
- Every successful resolve enqueues exactly one VisitEvent, hit or miss.
- Unknown codes produce neither a visit event nor a cache write.
- Cache and rate-limiter outages never block a redirect; the store is the only
  dependency whose failure fails the request.
- The visit counter is never touched here: the consumer applies it later.
- Two concurrent misses on the same code both populate the cache with the same value.

How to Use
===========
::
    service = RedirectService(rate_limiter, cache, store, queue)
    try:
        url = await service.resolve("abc1")
    except TooManyRequests:
        ...  # 429
    except NotFound:
        ...  # 404
"""

import logging
import time

from prometheus_client import Counter, Histogram

from scaleurl.cache import URLCache
from scaleurl.enums import CacheStatus, RateLimitDecision, RedirectOutcome
from scaleurl.exceptions import NotFound, TooManyRequests
from scaleurl.rate_limiter import FixedWindowRateLimiter
from scaleurl.schemas import VisitEvent
from scaleurl.store import CodeStore
from scaleurl.visit_queue import VisitQueue

__all__ = ["RedirectService"]

REDIRECT_REQUESTS_TOTAL = Counter(
    "scaleurl_redirect_requests_total",
    "Redirect resolutions by outcome",
    ["outcome"],
)
REDIRECT_DURATION = Histogram(
    "scaleurl_redirect_duration_seconds",
    "Time taken to resolve a short code",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)


class RedirectService:
    """Resolves short codes for the redirect endpoint.

    Args:
        rate_limiter: Per-code fixed-window limiter.
        cache: Fast-path cache in front of the store.
        store: System of record, read only on cache miss.
        queue: Visit event queue feeding the accounting consumer.
        logger: Optional logger (request-scoped adapter from the route).
    """

    def __init__(
        self,
        rate_limiter: FixedWindowRateLimiter,
        cache: URLCache,
        store: CodeStore,
        queue: VisitQueue,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._cache = cache
        self._store = store
        self._queue = queue
        self._logger = logger or logging.getLogger(__name__)

    def with_logger(self, logger: logging.Logger | logging.LoggerAdapter) -> "RedirectService":
        return RedirectService(self._rate_limiter, self._cache, self._store, self._queue, logger)

    async def resolve(self, short_code: str) -> str:
        """Return the destination for ``short_code``.

        Raises:
            TooManyRequests: The code's rate window is exhausted.
            NotFound: The code has no record.
        """
        start_time = time.perf_counter()
        try:
            return await self._resolve(short_code)
        finally:
            REDIRECT_DURATION.observe(time.perf_counter() - start_time)

    async def _resolve(self, short_code: str) -> str:
        limit = await self._rate_limiter.check(short_code)
        if limit.decision is RateLimitDecision.REJECTED:
            REDIRECT_REQUESTS_TOTAL.labels(outcome=RedirectOutcome.REJECTED).inc()
            raise TooManyRequests(short_code, retry_after=limit.retry_after)
        if limit.decision is RateLimitDecision.UNAVAILABLE:
            self._logger.warning(f"Rate limiter unavailable, allowing {short_code}")

        lookup = await self._cache.get(short_code)
        if lookup.status is CacheStatus.HIT:
            self._logger.debug(f"Cache hit for {short_code}")
            await self._record_visit(short_code)
            REDIRECT_REQUESTS_TOTAL.labels(outcome=RedirectOutcome.HIT).inc()
            return lookup.original_url
        if lookup.status is CacheStatus.UNAVAILABLE:
            self._logger.warning(f"Cache unavailable, reading store for {short_code}")

        link = await self._store.get_by_code(short_code)
        if link is None:
            REDIRECT_REQUESTS_TOTAL.labels(outcome=RedirectOutcome.NOT_FOUND).inc()
            raise NotFound(short_code)

        await self._cache.set(short_code, link.original_url)
        await self._record_visit(short_code)
        REDIRECT_REQUESTS_TOTAL.labels(outcome=RedirectOutcome.MISS).inc()
        return link.original_url

    async def _record_visit(self, short_code: str) -> None:
        accepted = await self._queue.enqueue(VisitEvent(short_code=short_code))
        if not accepted:
            self._logger.warning(f"Visit for {short_code} not recorded; redirecting anyway")
