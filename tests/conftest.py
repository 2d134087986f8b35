"""Shared pytest fixtures: in-memory backend, in-memory Code Store, wired services, API client."""

import datetime
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from scaleurl.analytics import AnalyticsService
from scaleurl.backends import InMemoryKeyValueBackend
from scaleurl.cache import URLCache
from scaleurl.config import Settings
from scaleurl.consumer import VisitAccountingConsumer
from scaleurl.dependencies import ServiceManager, get_service_manager
from scaleurl.exceptions import ShortCodeConflict
from scaleurl.main import app
from scaleurl.models import ShortLink
from scaleurl.rate_limiter import FixedWindowRateLimiter
from scaleurl.redirect_service import RedirectService
from scaleurl.store import CodeStore
from scaleurl.visit_queue import ListVisitQueue


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryCodeStore(CodeStore):
    """Dict-backed Code Store keeping insertion order for ties."""

    def __init__(self) -> None:
        self.links: dict[str, ShortLink] = {}

    def add(
        self,
        short_code: str,
        original_url: str,
        visit_count: int = 0,
        created_at: datetime.datetime | None = None,
    ) -> ShortLink:
        link = ShortLink(
            id=len(self.links) + 1,
            short_code=short_code,
            original_url=original_url,
            visit_count=visit_count,
            created_at=created_at or datetime.datetime.now().astimezone(),
        )
        self.links[short_code] = link
        return link

    async def ping(self) -> None:
        return None

    async def get_by_code(self, short_code: str) -> ShortLink | None:
        return self.links.get(short_code)

    async def insert(self, short_code: str, original_url: str) -> ShortLink:
        if short_code in self.links:
            raise ShortCodeConflict(short_code)
        return self.add(short_code, original_url)

    async def increment_visit_count(self, short_code: str, delta: int = 1) -> bool:
        link = self.links.get(short_code)
        if link is None:
            return False
        link.visit_count += delta
        return True

    async def top_by_visits(
        self, start: datetime.datetime, end: datetime.datetime, limit: int
    ) -> list[ShortLink]:
        in_range = [link for link in self.links.values() if start <= link.created_at < end]
        return sorted(in_range, key=lambda link: link.visit_count, reverse=True)[:limit]


@pytest.fixture
def settings() -> Settings:
    return Settings(CONSUMER_RETRY_DELAY_SECONDS=0.0, RUN_CONSUMER_IN_APP=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend(clock: FakeClock) -> InMemoryKeyValueBackend:
    return InMemoryKeyValueBackend(clock=clock)


@pytest.fixture
def store() -> InMemoryCodeStore:
    return InMemoryCodeStore()


@pytest.fixture
def queue(backend: InMemoryKeyValueBackend) -> ListVisitQueue:
    return ListVisitQueue(backend, key="visitQueue")


@pytest.fixture
def cache(backend: InMemoryKeyValueBackend) -> URLCache:
    return URLCache(backend, key_prefix="url")


@pytest.fixture
def rate_limiter(backend: InMemoryKeyValueBackend) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(backend, max_requests=100, window_seconds=60)


@pytest.fixture
def redirect_service(
    rate_limiter: FixedWindowRateLimiter,
    cache: URLCache,
    store: InMemoryCodeStore,
    queue: ListVisitQueue,
) -> RedirectService:
    return RedirectService(rate_limiter, cache, store, queue)


@pytest.fixture
def consumer(queue: ListVisitQueue, store: InMemoryCodeStore) -> VisitAccountingConsumer:
    return VisitAccountingConsumer(queue, store, retry_delay=0.0)


@pytest.fixture
def analytics_service(store: InMemoryCodeStore) -> AnalyticsService:
    return AnalyticsService(store, default_limit=10, max_limit=100)


@pytest_asyncio.fixture
async def manager(
    settings: Settings,
    backend: InMemoryKeyValueBackend,
    store: InMemoryCodeStore,
    queue: ListVisitQueue,
) -> AsyncGenerator[ServiceManager, None]:
    service_manager = ServiceManager()
    await service_manager.initialize(settings=settings, backend=backend, store=store, queue=queue)
    yield service_manager
    await service_manager.cleanup()


@pytest_asyncio.fixture
async def client(manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_service_manager() -> ServiceManager:
        return manager

    app.dependency_overrides[get_service_manager] = override_get_service_manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
