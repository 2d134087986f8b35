"""Visit event queue tests: list queue over the in-memory backend, Kafka queue over mocks."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiokafka.errors import KafkaConnectionError

from scaleurl.backends import InMemoryKeyValueBackend, KeyValueBackend
from scaleurl.config import Settings
from scaleurl.enums import QueueBackendKind
from scaleurl.exceptions import BackendUnavailable, InvalidVisitEvent
from scaleurl.schemas import VisitEvent
from scaleurl.visit_queue import KafkaVisitQueue, ListVisitQueue, build_visit_queue

# ============================================================================
# LIST QUEUE
# ============================================================================


@pytest.mark.asyncio
async def test_enqueue_writes_camel_case_json(queue: ListVisitQueue, backend: InMemoryKeyValueBackend) -> None:
    assert await queue.enqueue(VisitEvent(short_code="abc1", timestamp=1_700_000_000_000)) is True

    raw = await backend.blpop("visitQueue")
    assert json.loads(raw) == {"shortCode": "abc1", "timestamp": 1_700_000_000_000}


@pytest.mark.asyncio
async def test_dequeue_is_fifo(queue: ListVisitQueue) -> None:
    for code in ("a1", "b2", "c3"):
        await queue.enqueue(VisitEvent(short_code=code))

    assert [(await queue.dequeue()).short_code for _ in range(3)] == ["a1", "b2", "c3"]


@pytest.mark.asyncio
async def test_dequeue_waits_for_enqueue(queue: ListVisitQueue) -> None:
    waiter = asyncio.create_task(queue.dequeue())
    await asyncio.sleep(0)
    assert not waiter.done()

    await queue.enqueue(VisitEvent(short_code="abc1"))
    event = await asyncio.wait_for(waiter, timeout=1)
    assert event.short_code == "abc1"


@pytest.mark.asyncio
async def test_dequeue_rejects_garbage(queue: ListVisitQueue, backend: InMemoryKeyValueBackend) -> None:
    await backend.rpush("visitQueue", "not json")
    with pytest.raises(InvalidVisitEvent):
        await queue.dequeue()
    assert backend.list_length("visitQueue") == 0


@pytest.mark.asyncio
async def test_enqueue_failure_returns_false() -> None:
    backend = AsyncMock(spec=KeyValueBackend)
    backend.rpush = AsyncMock(side_effect=BackendUnavailable("connection refused"))
    queue = ListVisitQueue(backend)

    assert await queue.enqueue(VisitEvent(short_code="abc1")) is False


@pytest.mark.asyncio
async def test_dequeue_propagates_transport_failure() -> None:
    backend = AsyncMock(spec=KeyValueBackend)
    backend.blpop = AsyncMock(side_effect=BackendUnavailable("connection reset"))
    queue = ListVisitQueue(backend)

    with pytest.raises(BackendUnavailable):
        await queue.dequeue()


# ============================================================================
# KAFKA QUEUE
# ============================================================================


@pytest.fixture
def kafka_queue() -> KafkaVisitQueue:
    return KafkaVisitQueue("kafka:9092", "visit_events", "visit_accounting")


@pytest.mark.asyncio
async def test_kafka_enqueue_without_producer_drops(kafka_queue: KafkaVisitQueue) -> None:
    assert await kafka_queue.enqueue(VisitEvent(short_code="abc1")) is False


@pytest.mark.asyncio
async def test_kafka_enqueue_keys_by_short_code(kafka_queue: KafkaVisitQueue) -> None:
    producer = AsyncMock()
    kafka_queue._producer = producer
    event = VisitEvent(short_code="abc1", timestamp=1)

    assert await kafka_queue.enqueue(event) is True
    producer.send_and_wait.assert_awaited_once_with("visit_events", event.to_wire(), key=b"abc1")


@pytest.mark.asyncio
async def test_kafka_enqueue_failure_returns_false(kafka_queue: KafkaVisitQueue) -> None:
    producer = AsyncMock()
    producer.send_and_wait = AsyncMock(side_effect=KafkaConnectionError())
    kafka_queue._producer = producer

    assert await kafka_queue.enqueue(VisitEvent(short_code="abc1")) is False


@pytest.mark.asyncio
async def test_kafka_dequeue_decodes_record(kafka_queue: KafkaVisitQueue) -> None:
    record = MagicMock()
    record.value = b'{"shortCode":"abc1","timestamp":5}'
    consumer = AsyncMock()
    consumer.getone = AsyncMock(return_value=record)
    kafka_queue._consumer = consumer

    event = await kafka_queue.dequeue()
    assert event == VisitEvent(short_code="abc1", timestamp=5)


@pytest.mark.asyncio
async def test_kafka_dequeue_without_consumer_raises(kafka_queue: KafkaVisitQueue) -> None:
    with pytest.raises(BackendUnavailable):
        await kafka_queue.dequeue()


@pytest.mark.asyncio
async def test_kafka_consumer_start_failure_degrades(kafka_queue: KafkaVisitQueue) -> None:
    producer = AsyncMock()
    consumer = AsyncMock()
    consumer.start = AsyncMock(side_effect=KafkaConnectionError())

    with (
        patch("scaleurl.visit_queue.AIOKafkaProducer", return_value=producer),
        patch("scaleurl.visit_queue.AIOKafkaConsumer", return_value=consumer),
    ):
        await kafka_queue.start(consume=True)

    assert not kafka_queue.consuming
    consumer.stop.assert_awaited_once()
    assert await kafka_queue.enqueue(VisitEvent(short_code="abc1")) is True


@pytest.mark.asyncio
async def test_kafka_start_consuming(kafka_queue: KafkaVisitQueue) -> None:
    with (
        patch("scaleurl.visit_queue.AIOKafkaProducer", return_value=AsyncMock()),
        patch("scaleurl.visit_queue.AIOKafkaConsumer", return_value=AsyncMock()),
    ):
        await kafka_queue.start(consume=True)

    assert kafka_queue.consuming


@pytest.mark.asyncio
async def test_kafka_close_stops_clients(kafka_queue: KafkaVisitQueue) -> None:
    producer, consumer = AsyncMock(), AsyncMock()
    kafka_queue._producer = producer
    kafka_queue._consumer = consumer

    await kafka_queue.close()

    producer.stop.assert_awaited_once()
    consumer.stop.assert_awaited_once()


def test_build_visit_queue_picks_backend(backend: InMemoryKeyValueBackend) -> None:
    assert isinstance(build_visit_queue(Settings(), backend), ListVisitQueue)
    kafka = build_visit_queue(Settings(VISIT_QUEUE_BACKEND=QueueBackendKind.KAFKA), backend)
    assert isinstance(kafka, KafkaVisitQueue)
