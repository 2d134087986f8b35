"""HTTP endpoint tests through the ASGI app with in-memory services."""

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from scaleurl.dependencies import ServiceManager, get_service_manager
from scaleurl.main import app

# ============================================================================
# HEALTH
# ============================================================================


@pytest.mark.asyncio
async def test_health_ok(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "database": "healthy", "cache": "healthy"}


@pytest.mark.asyncio
async def test_health_reports_database_down(client: AsyncClient, store) -> None:
    store.ping = AsyncMock(side_effect=ConnectionError("db down"))

    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "unhealthy"
    assert response.json()["database"] == "unhealthy"
    assert response.json()["cache"] == "healthy"


# ============================================================================
# SHORTEN
# ============================================================================


@pytest.mark.asyncio
async def test_shorten_url(client: AsyncClient) -> None:
    response = await client.post("/api/v1/url/shorten", json={"url": "https://www.python.org"})

    assert response.status_code == 201
    data = response.json()
    assert data["message"] == "Short URL created successfully"
    assert data["original_url"] == "https://www.python.org"
    assert data["short_url"] == f"http://localhost:8000/{data['short_code']}"


@pytest.mark.asyncio
async def test_shorten_custom_code_conflict(client: AsyncClient) -> None:
    payload = {"url": "https://www.github.com", "custom_code": "ghub"}
    assert (await client.post("/api/v1/url/shorten", json=payload)).status_code == 201

    response = await client.post("/api/v1/url/shorten", json=payload)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_shorten_invalid_url(client: AsyncClient) -> None:
    response = await client.post("/api/v1/url/shorten", json={"url": "not-a-url"})
    assert response.status_code == 422


# ============================================================================
# REDIRECT
# ============================================================================


@pytest.mark.asyncio
async def test_redirect_valid_code(client: AsyncClient, store) -> None:
    store.add("abc1", "https://example.com")

    response = await client.get("/api/v1/url/abc1", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == "https://example.com"


@pytest.mark.asyncio
async def test_redirect_after_shorten(client: AsyncClient) -> None:
    create_resp = await client.post("/api/v1/url/shorten", json={"url": "https://www.google.com"})
    short_code = create_resp.json()["short_code"]

    response = await client.get(f"/api/v1/url/{short_code}", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == "https://www.google.com"


@pytest.mark.asyncio
async def test_redirect_unknown_code(client: AsyncClient) -> None:
    response = await client.get("/api/v1/url/nonexistent", follow_redirects=False)
    assert response.status_code == 404
    assert response.json()["detail"] == "Short URL not found"


@pytest.mark.asyncio
async def test_redirect_rate_limited(client: AsyncClient, store) -> None:
    store.add("hot1", "https://example.com")
    for _ in range(100):
        assert (await client.get("/api/v1/url/hot1", follow_redirects=False)).status_code == 302

    response = await client.get("/api/v1/url/hot1", follow_redirects=False)

    assert response.status_code == 429
    assert response.headers["retry-after"] == "60"


@pytest.mark.asyncio
async def test_redirect_store_failure_is_500(manager: ServiceManager, store) -> None:
    async def override_get_service_manager() -> ServiceManager:
        return manager

    store.get_by_code = AsyncMock(side_effect=ConnectionError("db down"))
    app.dependency_overrides[get_service_manager] = override_get_service_manager
    try:
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.get("/api/v1/url/abc1", follow_redirects=False)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500


# ============================================================================
# ANALYTICS
# ============================================================================


@pytest.mark.asyncio
async def test_analytics_after_visits(client: AsyncClient, store, manager: ServiceManager) -> None:
    store.add("abc1", "https://example.com")
    for _ in range(3):
        await client.get("/api/v1/url/abc1", follow_redirects=False)
    for _ in range(3):
        await manager.consumer.process_next()

    response = await client.get("/analytics/abc1")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["analytics"]["short_code"] == "abc1"
    assert data["analytics"]["original_url"] == "https://example.com"
    assert data["analytics"]["visit_count"] == 3


@pytest.mark.asyncio
async def test_analytics_unknown_code(client: AsyncClient) -> None:
    response = await client.get("/analytics/nope")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_top_today(client: AsyncClient, store) -> None:
    store.add("low", "https://example.com/low", visit_count=1)
    store.add("high", "https://example.com/high", visit_count=9)

    response = await client.get("/analytics/top/today")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["count"] == 2
    assert [link["short_code"] for link in data["top_urls"]] == ["high", "low"]


@pytest.mark.asyncio
async def test_top_with_limit(client: AsyncClient, store) -> None:
    for i in range(5):
        store.add(f"code{i}", f"https://example.com/{i}", visit_count=i)

    response = await client.get("/analytics/top/today", params={"limit": 2})

    assert response.status_code == 200
    assert response.json()["count"] == 2


@pytest.mark.asyncio
async def test_top_invalid_range(client: AsyncClient) -> None:
    response = await client.get("/analytics/top/bogus")
    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, 101])
async def test_top_invalid_limit(client: AsyncClient, limit: int) -> None:
    response = await client.get("/analytics/top/today", params={"limit": limit})
    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", ["abc", "2.5"])
async def test_top_non_integer_limit_is_400(client: AsyncClient, limit: str) -> None:
    response = await client.get("/analytics/top/today", params={"limit": limit})
    assert response.status_code == 400
    assert "integer" in response.json()["detail"]


@pytest.mark.asyncio
async def test_metrics_exposed(client: AsyncClient) -> None:
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "scaleurl_redirect_requests_total" in response.text
