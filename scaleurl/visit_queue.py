"""Visit event queue: the hand-off from the redirect path to the accounting consumer.

Flow Diagram: one visit
========================
::
    redirect path                      accounting consumer
    ┌─────────────┐                   ┌─────────────┐
    │ enqueue()   │                   │ dequeue()   │
    │ RPUSH tail  │──▶ visitQueue ──▶ │ BLPOP head  │
    └─────────────┘                   └─────────────┘
      best effort                       parks until an
      (False on failure)                element arrives

Delivery
========
At-least-once, no acknowledgment. ``dequeue`` removes the element before
the increment is applied, so a consumer that dies in between loses that
element, and a producer retry after an ambiguous failure can write it twice.
Visit counts are therefore approximate under crashes: usually exact,
sometimes over by a duplicate. There is no ack protocol on purpose; adding
one would change what callers observe.

Key Behaviours
===============
- ``enqueue`` never raises on transport failure; it logs and returns False.
- ``dequeue`` blocks without polling and raises ``BackendUnavailable`` on transport
  failure and ``InvalidVisitEvent`` on an undecodable payload.
- Single logical queue, single consumer. The Kafka backend keys messages by
  short code, so ordering holds per code rather than globally.

Classes:
    VisitQueue:  Abstract interface.
    ListVisitQueue:  FIFO over a KeyValueBackend list (Redis RPUSH/BLPOP).
    KafkaVisitQueue:  aiokafka topic with one consumer group.

Functions:
    build_visit_queue():  Pick the implementation from settings.
"""

import logging
from abc import ABC, abstractmethod

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.errors import KafkaError
from prometheus_client import Counter

from scaleurl.backends import KeyValueBackend
from scaleurl.config import Settings
from scaleurl.enums import QueueBackendKind
from scaleurl.exceptions import BackendUnavailable
from scaleurl.schemas import VisitEvent

__all__ = ["VisitQueue", "ListVisitQueue", "KafkaVisitQueue", "build_visit_queue"]

logger = logging.getLogger(__name__)

VISIT_EVENTS_ENQUEUED_TOTAL = Counter(
    "scaleurl_visit_events_enqueued_total",
    "Visit events durably accepted by the queue",
)
VISIT_EVENTS_DROPPED_TOTAL = Counter(
    "scaleurl_visit_events_dropped_total",
    "Visit events dropped because the queue rejected the write",
)


class VisitQueue(ABC):
    async def start(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @abstractmethod
    async def enqueue(self, event: VisitEvent) -> bool:
        """Append ``event`` to the tail; True once durably accepted."""

    @abstractmethod
    async def dequeue(self) -> VisitEvent:
        """Remove and return the head, waiting as long as it takes."""


class ListVisitQueue(VisitQueue):
    def __init__(self, backend: KeyValueBackend, key: str = "visitQueue") -> None:
        self._backend = backend
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    async def enqueue(self, event: VisitEvent) -> bool:
        try:
            await self._backend.rpush(self._key, event.to_wire())
        except BackendUnavailable as exc:
            VISIT_EVENTS_DROPPED_TOTAL.inc()
            logger.warning(f"Dropped visit event for {event.short_code}: {exc}")
            return False
        VISIT_EVENTS_ENQUEUED_TOTAL.inc()
        return True

    async def dequeue(self) -> VisitEvent:
        raw = None
        while raw is None:
            raw = await self._backend.blpop(self._key, timeout=0)
        return VisitEvent.from_wire(raw)


class KafkaVisitQueue(VisitQueue):
    """Visit queue on a Kafka topic.

    The producer side is what the API process uses; the consumer side is only
    started by the accounting worker (``start(consume=True)``). Offsets are
    auto-committed, which keeps the same at-least-once, no-ack behaviour as
    the list queue.
    """

    def __init__(self, bootstrap_servers: str, topic: str, group_id: str) -> None:
        self._bootstrap_servers = bootstrap_servers
        self._topic = topic
        self._group_id = group_id
        self._producer: AIOKafkaProducer | None = None
        self._consumer: AIOKafkaConsumer | None = None

    @property
    def consuming(self) -> bool:
        return self._consumer is not None

    async def start(self, consume: bool = False) -> None:
        if self._producer is None:
            producer = AIOKafkaProducer(
                bootstrap_servers=self._bootstrap_servers,
                value_serializer=lambda payload: payload.encode("utf-8"),
            )
            try:
                await producer.start()
                self._producer = producer
            except KafkaError:
                logger.warning("Kafka producer failed to start; visit events will be dropped", exc_info=True)
                await producer.stop()

        if consume and self._consumer is None:
            consumer = AIOKafkaConsumer(
                self._topic,
                bootstrap_servers=self._bootstrap_servers,
                group_id=self._group_id,
                enable_auto_commit=True,
                auto_offset_reset="earliest",
            )
            try:
                await consumer.start()
                self._consumer = consumer
            except KafkaError:
                logger.warning("Kafka consumer failed to start; visit events will not be counted", exc_info=True)
                await consumer.stop()

    async def close(self) -> None:
        if self._producer is not None:
            await self._producer.stop()
            self._producer = None
        if self._consumer is not None:
            await self._consumer.stop()
            self._consumer = None

    async def enqueue(self, event: VisitEvent) -> bool:
        if self._producer is None:
            VISIT_EVENTS_DROPPED_TOTAL.inc()
            logger.warning(f"Dropped visit event for {event.short_code}: producer not started")
            return False
        try:
            await self._producer.send_and_wait(
                self._topic,
                event.to_wire(),
                key=event.short_code.encode("utf-8"),
            )
        except KafkaError as exc:
            VISIT_EVENTS_DROPPED_TOTAL.inc()
            logger.warning(f"Dropped visit event for {event.short_code}: {exc}")
            return False
        VISIT_EVENTS_ENQUEUED_TOTAL.inc()
        return True

    async def dequeue(self) -> VisitEvent:
        if self._consumer is None:
            raise BackendUnavailable("Kafka consumer not started")
        try:
            record = await self._consumer.getone()
        except KafkaError as exc:
            raise BackendUnavailable(f"Kafka getone failed: {exc}") from exc
        return VisitEvent.from_wire(record.value)


def build_visit_queue(settings: Settings, backend: KeyValueBackend) -> VisitQueue:
    if settings.VISIT_QUEUE_BACKEND is QueueBackendKind.KAFKA:
        return KafkaVisitQueue(
            settings.KAFKA_BOOTSTRAP_SERVERS,
            settings.KAFKA_VISIT_TOPIC,
            settings.KAFKA_CONSUMER_GROUP,
        )
    return ListVisitQueue(backend, settings.VISIT_QUEUE_KEY)
