"""FastAPI application entry point for the scaleurl gateway.

Application Lifecycle Diagram
=============================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ init_db()   │
    │ services    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ consumer    │
    │ task (opt.) │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ cancel task │
    │ cleanup()   │
    │ close_db()  │
    └─────────────┘

How to Use
===========
**Run the API (and the in-process consumer)**::
    uvicorn scaleurl.main:app --host 0.0.0.0 --port 8000

**Run the consumer on its own** (set ``RUN_CONSUMER_IN_APP=false`` for the API)::
    python -m scaleurl.consumer
"""

__all__ = ["app", "start_visit_accounting"]

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from scaleurl.config import get_settings
from scaleurl.database import close_db, init_db
from scaleurl.dependencies import ServiceManager, _service_manager
from scaleurl.routes import router
from scaleurl.visit_queue import KafkaVisitQueue

settings = get_settings()
logger = logging.getLogger(__name__)


async def start_visit_accounting(manager: ServiceManager) -> asyncio.Task | None:
    """Run the accounting consumer as a background task; None when it cannot consume."""
    queue = manager.queue
    if isinstance(queue, KafkaVisitQueue):
        await queue.start(consume=True)
        if not queue.consuming:
            logger.warning("Visit accounting disabled: Kafka consumer is not running.")
            return None
    return asyncio.create_task(manager.consumer.run())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await init_db()
    await _service_manager.initialize()

    consumer_task: asyncio.Task | None = None
    if settings.RUN_CONSUMER_IN_APP:
        consumer_task = await start_visit_accounting(_service_manager)
    yield
    # Shutdown
    if consumer_task is not None:
        consumer_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await consumer_task
        logger.info("Visit accounting task cancelled.")
    await _service_manager.cleanup()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Short-link redirect gateway with asynchronous visit accounting",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)

app.include_router(router)
