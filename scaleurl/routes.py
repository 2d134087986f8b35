"""FastAPI route definitions for the scaleurl gateway.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    POST /api/v1/url/shorten
        ├─ ShortenRequest (request body)
        └─ ShortenResponse (201) or 409/422

    GET  /api/v1/url/:short_code
        └─ 302 Redirect, 404 or 429

    GET  /analytics/top/:time_range?limit=N
        └─ TopLinksResponse (200) or 400

    GET  /analytics/:short_code
        └─ AnalyticsResponse (200) or 404

Key Behaviours
===============
- Domain exceptions are translated to HTTP errors here and nowhere else.
- 429 responses carry ``Retry-After`` with the seconds left in the window.
- Code Store failures are not caught; the request fails with a 500.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from scaleurl.analytics import AnalyticsService
from scaleurl.dependencies import (
    RequestContext,
    get_analytics_service,
    get_redirect_service,
    get_request_context,
    get_shortener_service,
)
from scaleurl.enums import HealthStatus
from scaleurl.exceptions import (
    BackendUnavailable,
    InvalidArgument,
    NotFound,
    ShortCodeConflict,
    TooManyRequests,
)
from scaleurl.redirect_service import RedirectService
from scaleurl.schemas import (
    AnalyticsResponse,
    HealthResponse,
    LinkAnalytics,
    ShortenRequest,
    ShortenResponse,
    TopLinksResponse,
)
from scaleurl.shortener import ShortenerService

__all__ = ["router"]

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    manager = ctx.service_manager
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        await manager.store.ping()
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        await manager.backend.ping()
    except BackendUnavailable as e:
        ctx.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post("/api/v1/url/shorten", response_model=ShortenResponse, status_code=201, tags=["urls"])
async def shorten_url(
    payload: ShortenRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: ShortenerService = Depends(get_shortener_service),
) -> ShortenResponse:
    try:
        link = await service.create_short_url(payload)
    except ShortCodeConflict as exc:
        ctx.logger.warning(f"URL shortening failed: {exc}")
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    return ShortenResponse(
        short_url=f"{ctx.settings.BASE_URL}/{link.short_code}",
        short_code=link.short_code,
        original_url=link.original_url,
    )


@router.get("/api/v1/url/{short_code}", tags=["redirect"])
async def redirect_to_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: RedirectService = Depends(get_redirect_service),
) -> RedirectResponse:
    try:
        original_url = await service.resolve(short_code)
    except TooManyRequests as exc:
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        raise HTTPException(
            status_code=429, detail="Rate limit exceeded. Try again later.", headers=headers
        ) from exc
    except NotFound as exc:
        raise HTTPException(status_code=404, detail="Short URL not found") from exc

    ctx.logger.info(
        f"Redirect {short_code} -> {original_url}",
        extra={"operation": "redirect", "duration_ms": ctx.get_duration()},
    )
    return RedirectResponse(url=original_url, status_code=302)


@router.get("/analytics/top/{time_range}", response_model=TopLinksResponse, tags=["analytics"])
async def get_top_links(
    time_range: str,
    limit: str | None = Query(default=None),
    service: AnalyticsService = Depends(get_analytics_service),
) -> TopLinksResponse:
    try:
        links = await service.get_top(time_range, limit)
    except InvalidArgument as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    top_urls = [LinkAnalytics.model_validate(link) for link in links]
    return TopLinksResponse(count=len(top_urls), top_urls=top_urls)


@router.get("/analytics/{short_code}", response_model=AnalyticsResponse, tags=["analytics"])
async def get_link_analytics(
    short_code: str,
    service: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsResponse:
    try:
        link = await service.get_by_code(short_code)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail="Short URL not found") from exc

    return AnalyticsResponse(analytics=LinkAnalytics.model_validate(link))
