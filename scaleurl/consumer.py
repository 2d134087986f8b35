"""Visit accounting consumer.

Drains the visit queue one event at a time and applies ``visit_count + 1``
to the Code Store. Runs as a task inside the API process or standalone::

    python -m scaleurl.consumer

Per-event handling:
    - applied:  store row matched and was incremented.
    - stale:    no row for the code; logged and dropped, never retried.
    - invalid:  payload could not be decoded; logged and dropped.
    - failed:   store or queue transport error; logged, then the loop sleeps
                ``retry_delay`` seconds and moves on to the next dequeue. The
                event that failed is not requeued, so a store outage loses
                those visits.

The loop survives every per-event error; only cancellation stops it.
"""

import asyncio
import logging

from prometheus_client import Counter

from scaleurl.enums import VisitOutcome
from scaleurl.exceptions import InvalidVisitEvent, StaleTarget
from scaleurl.store import CodeStore
from scaleurl.visit_queue import VisitQueue

__all__ = ["VisitAccountingConsumer", "run"]

logger = logging.getLogger(__name__)

VISIT_EVENTS_CONSUMED_TOTAL = Counter(
    "scaleurl_visit_events_consumed_total",
    "Visit events taken off the queue by outcome",
    ["outcome"],
)


class VisitAccountingConsumer:
    def __init__(self, queue: VisitQueue, store: CodeStore, retry_delay: float = 1.0) -> None:
        self._queue = queue
        self._store = store
        self._retry_delay = retry_delay
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def _apply_next(self) -> None:
        event = await self._queue.dequeue()
        applied = await self._store.increment_visit_count(event.short_code)
        if not applied:
            raise StaleTarget(event.short_code)

    async def process_next(self) -> VisitOutcome:
        """Wait for one event and apply it; never raises except on cancellation."""
        try:
            await self._apply_next()
            outcome = VisitOutcome.APPLIED
        except StaleTarget as exc:
            logger.warning(f"Dropping visit event: {exc}")
            outcome = VisitOutcome.STALE
        except InvalidVisitEvent as exc:
            logger.warning(f"Dropping visit event: {exc}")
            outcome = VisitOutcome.INVALID
        except Exception:
            logger.error("Visit accounting iteration failed", exc_info=True)
            outcome = VisitOutcome.FAILED

        VISIT_EVENTS_CONSUMED_TOTAL.labels(outcome=outcome).inc()
        if outcome is VisitOutcome.FAILED:
            await asyncio.sleep(self._retry_delay)
        return outcome

    async def run(self) -> None:
        logger.info("Visit accounting consumer started")
        self._running = True
        try:
            while True:
                await self.process_next()
        finally:
            self._running = False
            logger.info("Visit accounting consumer stopped")


async def run() -> None:
    from scaleurl.backends import build_backend
    from scaleurl.config import get_settings
    from scaleurl.database import async_session, close_db
    from scaleurl.store import SQLAlchemyCodeStore
    from scaleurl.visit_queue import KafkaVisitQueue, build_visit_queue

    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    backend = build_backend(settings)
    queue = build_visit_queue(settings, backend)
    if isinstance(queue, KafkaVisitQueue):
        await queue.start(consume=True)
    else:
        await queue.start()

    consumer = VisitAccountingConsumer(
        queue,
        SQLAlchemyCodeStore(async_session),
        retry_delay=settings.CONSUMER_RETRY_DELAY_SECONDS,
    )
    try:
        await consumer.run()
    finally:
        await queue.close()
        await backend.close()
        await close_db()


if __name__ == "__main__":
    asyncio.run(run())
