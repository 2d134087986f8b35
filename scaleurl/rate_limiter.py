"""Per-code fixed-window rate limiter.

Each short code gets a counter key (``rate:<code>``) that lives for one
window. The first hit creates it and arms the expiry; hits past the limit
are rejected while the window is still running.

Flow Diagram: check()
======================
::
    ┌─────────────┐
    │ INCR        │
    │ rate:<code> │
    └──────┬──────┘
           ▼
    count == 1? ── YES ──▶ EXPIRE key window
           │
           ▼
    count > limit? ── NO ──▶ ALLOWED
           │ YES
           ▼
    ┌─────────────┐
    │ TTL key     │
    └──────┬──────┘
    ttl > 0? ── YES ──▶ REJECTED (retry after ttl)
           │ NO
           ▼
    SET key 1 EX window (new window) ──▶ ALLOWED

Key Behaviours
===============
- Only the INCR is atomic. INCR and EXPIRE are separate round trips, so a
  counter can outlive its window without an expiry (a crash or a failed
  EXPIRE between the two). Over the limit, a counter whose TTL is unset or
  non-positive is treated as an expired window: the counter restarts at 1
  with a fresh expiry and the request is allowed. A TTL of 0 (under half a
  second left) counts as expired, so the new window never inherits the old
  count. Errors lean toward letting traffic through.
- Backend failures return UNAVAILABLE instead of raising; the redirect path
  allows the request.
- Rejections carry the remaining TTL for a ``Retry-After`` header.

How to Use
===========
::
    limiter = FixedWindowRateLimiter(backend, max_requests=100, window_seconds=60)
    result = await limiter.check("abc1")
    if result.decision is RateLimitDecision.REJECTED:
        raise TooManyRequests("abc1", retry_after=result.retry_after)
"""

import logging
from dataclasses import dataclass

from prometheus_client import Counter

from scaleurl.backends import KeyValueBackend
from scaleurl.enums import RateLimitDecision
from scaleurl.exceptions import BackendUnavailable

__all__ = ["RateLimitResult", "FixedWindowRateLimiter"]

logger = logging.getLogger(__name__)

RATE_LIMIT_DECISIONS_TOTAL = Counter(
    "scaleurl_rate_limit_decisions_total",
    "Rate limiter decisions",
    ["decision"],
)


@dataclass(frozen=True)
class RateLimitResult:
    decision: RateLimitDecision
    count: int | None = None
    retry_after: int | None = None

    @property
    def rejected(self) -> bool:
        return self.decision is RateLimitDecision.REJECTED


class FixedWindowRateLimiter:
    def __init__(
        self,
        backend: KeyValueBackend,
        max_requests: int = 100,
        window_seconds: int = 60,
        key_prefix: str = "rate",
    ) -> None:
        assert max_requests > 0, f"max_requests must be positive, got {max_requests!r}"
        assert window_seconds > 0, f"window_seconds must be positive, got {window_seconds!r}"
        self._backend = backend
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._key_prefix = key_prefix

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def key_for(self, short_code: str) -> str:
        return f"{self._key_prefix}:{short_code}"

    async def check(self, short_code: str) -> RateLimitResult:
        try:
            result = await self._count_hit(short_code)
        except BackendUnavailable as exc:
            logger.warning(f"Rate limiter unavailable for {short_code}, allowing request: {exc}")
            result = RateLimitResult(RateLimitDecision.UNAVAILABLE)
        RATE_LIMIT_DECISIONS_TOTAL.labels(decision=result.decision).inc()
        return result

    async def _count_hit(self, short_code: str) -> RateLimitResult:
        key = self.key_for(short_code)
        count = await self._backend.incr(key)
        if count == 1:
            await self._backend.expire(key, self._window_seconds)

        if count <= self._max_requests:
            return RateLimitResult(RateLimitDecision.ALLOWED, count=count)

        ttl = await self._backend.ttl(key)
        if ttl > 0:
            logger.warning(f"Rate limit exceeded for {short_code}: {count} (ttl={ttl}s)")
            return RateLimitResult(RateLimitDecision.REJECTED, count=count, retry_after=ttl)

        # No live expiry left on the counter: open the next window with this hit.
        await self._backend.set(key, "1", ttl=self._window_seconds)
        logger.info(f"Started new rate window for {short_code} (stale count={count}, ttl={ttl})")
        return RateLimitResult(RateLimitDecision.ALLOWED, count=1)
