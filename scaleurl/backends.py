"""Shared key/value backend behind the cache, the rate limiter and the visit queue.

The redirect path only needs a handful of primitives from its shared store:
plain get/set, an atomic counter with expiry, and a FIFO list with a blocking
pop. This module pins those down as ``KeyValueBackend`` and ships two
implementations.

Flow Diagram: build_backend()
==============================
::
    ┌─────────────┐
    │ Settings.   │
    │ KV_BACKEND  │
    └──────┬──────┘
    REDIS? │
    ┌─────┴─────┐
    │ YES        │ NO (memory)
    ▼            ▼
┌──────────┐  ┌──────────┐
│ redis.   │  │ dicts +  │
│ asyncio  │  │ asyncio  │
│ client   │  │ Lock     │
└──────────┘  └──────────┘

How to Use
===========
**Step 1: Build from settings**::
    backend = build_backend(get_settings())

**Step 2: Use the primitives**::
    count = await backend.incr("rate:abc1")
    if count == 1:
        await backend.expire("rate:abc1", 60)

**Step 3: Cleanup on shutdown**::
    await backend.close()

Key Behaviours
===============
- ``ttl`` follows Redis conventions: -2 when the key is missing, -1 when it has no expiry.
- ``blpop`` with ``timeout=0`` parks until an element arrives; there is no polling.
- Redis transport errors surface as ``BackendUnavailable`` so callers can fail open.
- The in-memory backend serializes every operation on one lock, so ``incr`` is atomic.

Classes:
    KeyValueBackend:  Abstract interface.
    RedisKeyValueBackend:  redis.asyncio implementation.
    InMemoryKeyValueBackend:  In-process implementation for local runs and tests.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from collections.abc import Callable

import redis.asyncio as redis
from redis.exceptions import RedisError

from scaleurl.config import Settings
from scaleurl.enums import KeyValueBackendKind
from scaleurl.exceptions import BackendUnavailable

__all__ = [
    "KeyValueBackend",
    "RedisKeyValueBackend",
    "InMemoryKeyValueBackend",
    "build_backend",
]

TTL_MISSING = -2
TTL_PERSISTENT = -1


class KeyValueBackend(ABC):
    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int | None = None) -> None: ...

    @abstractmethod
    async def incr(self, key: str) -> int: ...

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> bool: ...

    @abstractmethod
    async def ttl(self, key: str) -> int: ...

    @abstractmethod
    async def rpush(self, key: str, value: str) -> int: ...

    @abstractmethod
    async def blpop(self, key: str, timeout: float = 0) -> str | None: ...

    @abstractmethod
    async def ping(self) -> bool: ...

    async def close(self) -> None:
        return None


class RedisKeyValueBackend(KeyValueBackend):
    """``KeyValueBackend`` over a ``redis.asyncio.Redis`` client (decode_responses=True)."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueBackend":
        return cls(redis.from_url(url, encoding="utf-8", decode_responses=True))

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except RedisError as exc:
            raise BackendUnavailable(f"GET {key} failed: {exc}") from exc

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl or None)
        except RedisError as exc:
            raise BackendUnavailable(f"SET {key} failed: {exc}") from exc

    async def incr(self, key: str) -> int:
        try:
            return int(await self._client.incr(key))
        except RedisError as exc:
            raise BackendUnavailable(f"INCR {key} failed: {exc}") from exc

    async def expire(self, key: str, seconds: int) -> bool:
        try:
            return bool(await self._client.expire(key, seconds))
        except RedisError as exc:
            raise BackendUnavailable(f"EXPIRE {key} failed: {exc}") from exc

    async def ttl(self, key: str) -> int:
        try:
            return int(await self._client.ttl(key))
        except RedisError as exc:
            raise BackendUnavailable(f"TTL {key} failed: {exc}") from exc

    async def rpush(self, key: str, value: str) -> int:
        try:
            return int(await self._client.rpush(key, value))
        except RedisError as exc:
            raise BackendUnavailable(f"RPUSH {key} failed: {exc}") from exc

    async def blpop(self, key: str, timeout: float = 0) -> str | None:
        try:
            popped = await self._client.blpop([key], timeout=timeout)
        except RedisError as exc:
            raise BackendUnavailable(f"BLPOP {key} failed: {exc}") from exc
        if popped is None:
            return None
        _, value = popped
        return value

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            raise BackendUnavailable(f"PING failed: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()


class InMemoryKeyValueBackend(KeyValueBackend):
    """In-process backend: dicts guarded by a single lock, lists woken by a condition.

    ``clock`` returns monotonic seconds; tests pass a controllable one to move
    rate windows forward without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._values: dict[str, str] = {}
        self._expires_at: dict[str, float] = {}
        self._lists: defaultdict[str, deque[str]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self._list_ready = asyncio.Condition(self._lock)

    def _evict_if_expired(self, key: str) -> None:
        deadline = self._expires_at.get(key)
        if deadline is not None and self._clock() >= deadline:
            self._values.pop(key, None)
            self._expires_at.pop(key, None)

    async def get(self, key: str) -> str | None:
        async with self._lock:
            self._evict_if_expired(key)
            return self._values.get(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        async with self._lock:
            self._values[key] = value
            if ttl:
                self._expires_at[key] = self._clock() + ttl
            else:
                self._expires_at.pop(key, None)

    async def incr(self, key: str) -> int:
        async with self._lock:
            self._evict_if_expired(key)
            value = int(self._values.get(key, "0")) + 1
            self._values[key] = str(value)
            return value

    async def expire(self, key: str, seconds: int) -> bool:
        async with self._lock:
            self._evict_if_expired(key)
            if key not in self._values:
                return False
            self._expires_at[key] = self._clock() + seconds
            return True

    async def ttl(self, key: str) -> int:
        async with self._lock:
            self._evict_if_expired(key)
            if key not in self._values:
                return TTL_MISSING
            deadline = self._expires_at.get(key)
            if deadline is None:
                return TTL_PERSISTENT
            # Redis rounds the remaining milliseconds to the nearest second.
            return int(round(deadline - self._clock()))

    async def rpush(self, key: str, value: str) -> int:
        async with self._list_ready:
            self._lists[key].append(value)
            self._list_ready.notify_all()
            return len(self._lists[key])

    async def blpop(self, key: str, timeout: float = 0) -> str | None:
        async with self._list_ready:
            ready = self._list_ready.wait_for(lambda: bool(self._lists[key]))
            if timeout:
                try:
                    await asyncio.wait_for(ready, timeout)
                except asyncio.TimeoutError:
                    return None
            else:
                await ready
            return self._lists[key].popleft()

    async def ping(self) -> bool:
        return True

    def list_length(self, key: str) -> int:
        return len(self._lists[key])


def build_backend(settings: Settings) -> KeyValueBackend:
    if settings.KV_BACKEND is KeyValueBackendKind.MEMORY:
        return InMemoryKeyValueBackend()
    return RedisKeyValueBackend.from_url(settings.REDIS_URL)
