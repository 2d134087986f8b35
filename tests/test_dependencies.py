"""Service manager wiring tests."""

import pytest

from scaleurl.backends import InMemoryKeyValueBackend
from scaleurl.config import Settings
from scaleurl.dependencies import RequestContext, ServiceManager
from scaleurl.enums import KeyValueBackendKind
from scaleurl.visit_queue import ListVisitQueue


@pytest.mark.asyncio
async def test_initialize_uses_injected_components(manager: ServiceManager, backend, store, queue) -> None:
    assert manager.initialized
    assert manager.backend is backend
    assert manager.store is store
    assert manager.queue is queue
    assert manager.rate_limiter.max_requests == 100
    assert manager.rate_limiter.window_seconds == 60


@pytest.mark.asyncio
async def test_initialize_builds_from_settings(store) -> None:
    manager = ServiceManager()
    settings = Settings(KV_BACKEND=KeyValueBackendKind.MEMORY, RATE_LIMIT_MAX_REQUESTS=5, VISIT_QUEUE_KEY="visits")

    await manager.initialize(settings=settings, store=store)

    assert isinstance(manager.backend, InMemoryKeyValueBackend)
    assert isinstance(manager.queue, ListVisitQueue)
    assert manager.queue.key == "visits"
    assert manager.rate_limiter.max_requests == 5

    await manager.cleanup()
    assert not manager.initialized


@pytest.mark.asyncio
async def test_initialize_is_idempotent(manager: ServiceManager) -> None:
    cache = manager.cache
    await manager.initialize()
    assert manager.cache is cache


@pytest.mark.asyncio
async def test_request_context_logger_carries_request_id(manager: ServiceManager) -> None:
    ctx = RequestContext(service_manager=manager, request_id="req-1", client_ip="10.0.0.1")

    assert ctx.logger.extra["request_id"] == "req-1"
    assert ctx.logger.extra["client_ip"] == "10.0.0.1"
    assert ctx.settings is manager.settings
    assert ctx.get_duration() >= 0
