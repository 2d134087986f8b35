"""Creation path: mint short codes and write them through to the cache.

Key Behaviours
===============
- Custom codes are used as given; a taken one raises ``ShortCodeConflict``.
- Generated codes come from nanoid over a base62 alphabet; a collision is retried
  up to ``max_attempts`` times before giving up with ``ShortCodeConflict``.
- The store insert is authoritative: the unique index catches races between the
  existence check and the insert.
- The cache write-through is best effort; a cache outage only costs a store read later.
"""

import logging

from nanoid import generate
from prometheus_client import Counter

from scaleurl.cache import URLCache
from scaleurl.exceptions import ShortCodeConflict
from scaleurl.models import ShortLink
from scaleurl.schemas import ShortenRequest
from scaleurl.store import CodeStore

__all__ = ["ALPHABET", "generate_short_code", "ShortenerService"]

logger = logging.getLogger(__name__)

ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

SHORT_LINKS_CREATED_TOTAL = Counter(
    "scaleurl_short_links_created_total",
    "Short links created",
    ["kind"],
)


def generate_short_code(length: int = 8) -> str:
    assert isinstance(length, int) and length > 0, f"length must be a positive integer, got {length!r}"
    return generate(ALPHABET, length)


class ShortenerService:
    def __init__(
        self,
        store: CodeStore,
        cache: URLCache,
        code_length: int = 8,
        max_attempts: int = 5,
    ) -> None:
        self._store = store
        self._cache = cache
        self._code_length = code_length
        self._max_attempts = max_attempts

    async def create_short_url(self, payload: ShortenRequest) -> ShortLink:
        if payload.custom_code:
            link = await self._insert(payload.custom_code, payload.url)
            SHORT_LINKS_CREATED_TOTAL.labels(kind="custom").inc()
        else:
            link = await self._insert_generated(payload.url)
            SHORT_LINKS_CREATED_TOTAL.labels(kind="generated").inc()

        await self._cache.set(link.short_code, link.original_url)
        logger.info(f"Created short code {link.short_code} -> {link.original_url}")
        return link

    async def _insert(self, short_code: str, original_url: str) -> ShortLink:
        if await self._store.get_by_code(short_code) is not None:
            raise ShortCodeConflict(short_code)
        return await self._store.insert(short_code, original_url)

    async def _insert_generated(self, original_url: str) -> ShortLink:
        short_code = ""
        for _ in range(self._max_attempts):
            short_code = generate_short_code(self._code_length)
            try:
                return await self._insert(short_code, original_url)
            except ShortCodeConflict:
                logger.debug(f"Generated code {short_code} collided, retrying")
        raise ShortCodeConflict(short_code)
