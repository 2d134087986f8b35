"""Fast-path cache: short code → destination URL.

Destinations are immutable per code, so an entry can only be present or
absent, never wrong. Eviction (``CACHE_TTL_SECONDS``) costs an extra Code
Store read, nothing more.

Key Behaviours
===============
- ``get`` reports HIT, MISS or UNAVAILABLE; it never raises on backend failure.
- ``set`` is idempotent and overwrite-safe; concurrent populates write the same value.
- What to do on UNAVAILABLE is decided by the caller (the redirect path treats it as a miss).
"""

import logging
from dataclasses import dataclass

from prometheus_client import Counter

from scaleurl.backends import KeyValueBackend
from scaleurl.enums import CacheStatus
from scaleurl.exceptions import BackendUnavailable

__all__ = ["CacheLookup", "URLCache"]

logger = logging.getLogger(__name__)

CACHE_OPERATIONS_TOTAL = Counter(
    "scaleurl_cache_operations_total",
    "Fast-path cache operations by kind and status",
    ["operation", "status"],
)


@dataclass(frozen=True)
class CacheLookup:
    status: CacheStatus
    original_url: str | None = None

    @property
    def hit(self) -> bool:
        return self.status is CacheStatus.HIT


class URLCache:
    def __init__(self, backend: KeyValueBackend, key_prefix: str = "url", ttl_seconds: int = 0) -> None:
        self._backend = backend
        self._key_prefix = key_prefix
        self._ttl_seconds = ttl_seconds

    def key_for(self, short_code: str) -> str:
        return f"{self._key_prefix}:{short_code}" if self._key_prefix else short_code

    async def get(self, short_code: str) -> CacheLookup:
        try:
            cached = await self._backend.get(self.key_for(short_code))
        except BackendUnavailable as exc:
            logger.warning(f"Cache read failed for {short_code}: {exc}")
            CACHE_OPERATIONS_TOTAL.labels(operation="get", status=CacheStatus.UNAVAILABLE).inc()
            return CacheLookup(CacheStatus.UNAVAILABLE)

        status = CacheStatus.HIT if cached else CacheStatus.MISS
        CACHE_OPERATIONS_TOTAL.labels(operation="get", status=status).inc()
        return CacheLookup(status, cached or None)

    async def set(self, short_code: str, original_url: str) -> bool:
        """Store the mapping; returns False when the backend is unavailable."""
        try:
            await self._backend.set(self.key_for(short_code), original_url, ttl=self._ttl_seconds or None)
        except BackendUnavailable as exc:
            logger.warning(f"Cache write failed for {short_code}: {exc}")
            CACHE_OPERATIONS_TOTAL.labels(operation="set", status=CacheStatus.UNAVAILABLE).inc()
            return False
        CACHE_OPERATIONS_TOTAL.labels(operation="set", status="ok").inc()
        return True
