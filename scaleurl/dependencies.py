"""Dependency injection with a shared service manager.

This module builds the shared resources once (key/value backend, visit queue,
Code Store, services, logger) and hands them to routes through FastAPI
dependencies, with a lightweight per-request context for logging.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request

from scaleurl.analytics import AnalyticsService
from scaleurl.backends import KeyValueBackend, build_backend
from scaleurl.cache import URLCache
from scaleurl.config import Settings, get_settings
from scaleurl.consumer import VisitAccountingConsumer
from scaleurl.rate_limiter import FixedWindowRateLimiter
from scaleurl.redirect_service import RedirectService
from scaleurl.shortener import ShortenerService
from scaleurl.store import CodeStore
from scaleurl.visit_queue import VisitQueue, build_visit_queue


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Holds resources shared by every request.

    ``initialize`` accepts ready-made backend/store/queue so tests and
    alternative deployments can swap them without touching the routes.
    """

    def __init__(self) -> None:
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(
        self,
        settings: Settings | None = None,
        backend: KeyValueBackend | None = None,
        store: CodeStore | None = None,
        queue: VisitQueue | None = None,
    ) -> None:
        """Initialize shared resources once at startup."""
        if self._initialized:
            return

        self.settings = settings or get_settings()
        self.logger = self._setup_logger()
        self.backend = backend or build_backend(self.settings)
        self.store = store or self._setup_store()
        self.queue = queue or build_visit_queue(self.settings, self.backend)
        await self.queue.start()

        self.cache = URLCache(
            self.backend,
            key_prefix=self.settings.CACHE_KEY_PREFIX,
            ttl_seconds=self.settings.CACHE_TTL_SECONDS,
        )
        self.rate_limiter = FixedWindowRateLimiter(
            self.backend,
            max_requests=self.settings.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=self.settings.RATE_LIMIT_WINDOW_SECONDS,
            key_prefix=self.settings.RATE_LIMIT_KEY_PREFIX,
        )
        self.redirect_service = RedirectService(
            self.rate_limiter, self.cache, self.store, self.queue, self.logger
        )
        self.shortener_service = ShortenerService(
            self.store,
            self.cache,
            code_length=self.settings.SHORT_CODE_LENGTH,
            max_attempts=self.settings.SHORT_CODE_MAX_ATTEMPTS,
        )
        self.analytics_service = AnalyticsService(
            self.store,
            default_limit=self.settings.TOP_N_DEFAULT,
            max_limit=self.settings.TOP_N_MAX,
        )
        self.consumer = VisitAccountingConsumer(
            self.queue,
            self.store,
            retry_delay=self.settings.CONSUMER_RETRY_DELAY_SECONDS,
        )
        self._initialized = True

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("scaleurl")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(self.settings.LOG_LEVEL)
        return logger

    def _setup_store(self) -> CodeStore:
        from scaleurl.database import async_session
        from scaleurl.store import SQLAlchemyCodeStore

        return SQLAlchemyCodeStore(async_session)

    async def cleanup(self) -> None:
        """Cleanup shared resources at shutdown."""
        if not self._initialized:
            return
        await self.queue.close()
        await self.backend.close()
        self._initialized = False


# Global service manager instance
_service_manager = ServiceManager()


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request tracking data plus access to the shared service manager.

    Attributes:
        service_manager: Shared resources
        request_id: Unique identifier for this request
        client_ip: Client IP address
        user_agent: Client user agent string
        start_time: Request start timestamp
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    start_time: float = field(default_factory=time.time)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger carrying this request's identifiers."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
            },
        )

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager.initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        service_manager=manager,
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        client_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def get_redirect_service(ctx: RequestContext = Depends(get_request_context)) -> RedirectService:
    return ctx.service_manager.redirect_service.with_logger(ctx.logger)


def get_shortener_service(ctx: RequestContext = Depends(get_request_context)) -> ShortenerService:
    return ctx.service_manager.shortener_service


def get_analytics_service(ctx: RequestContext = Depends(get_request_context)) -> AnalyticsService:
    return ctx.service_manager.analytics_service
