import asyncio
from datetime import timedelta

import pytest
import structlog

from rqueue.adapters.service.memory import InMemoryQueueService
from rqueue.adapters.service.redis import RedisQueueService
from rqueue.config import ClientSettings
from rqueue.core.client import QueueClient
from rqueue.core.connection import RetryPolicy
from rqueue.domain.errors import (
    ConnectionFatalError,
    MessageNotFoundError,
    TransportError,
)
from rqueue.domain.models import ConnectionState, QueueIdentity, QueueMessage

FAST = (timedelta(milliseconds=1), timedelta(milliseconds=5))

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def service() -> InMemoryQueueService:
    return InMemoryQueueService()


def _client(service: InMemoryQueueService, **kwargs: object) -> QueueClient:
    params: dict[str, object] = dict(
        queue_name="jobs",
        namespace="test",
        logger=structlog.get_logger(),
        service=service,
        poll_intervals=FAST,
        not_ready_delay=timedelta(milliseconds=5),
        retry=RetryPolicy(min_delay=timedelta(milliseconds=1)),
        health_check_interval=timedelta(milliseconds=10),
    )
    params.update(kwargs)
    return QueueClient(**params)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("missing", ["queue_name", "namespace", "logger"])
def test_required_parameters(service: InMemoryQueueService, missing: str) -> None:
    with pytest.raises(ValueError, match=missing):
        _client(service, **{missing: "" if missing != "logger" else None})


def test_defaults_to_redis_service() -> None:
    client = QueueClient("jobs", "test", structlog.get_logger())
    assert isinstance(client.service, RedisQueueService)
    assert client.service.host == "127.0.0.1"
    assert client.service.port == 6379


def test_starts_disconnected(service: InMemoryQueueService) -> None:
    client = _client(service)
    assert client.state is ConnectionState.DISCONNECTED
    assert not client.ready


def test_from_settings(service: InMemoryQueueService) -> None:
    settings = ClientSettings(
        queue_name="emails",
        namespace="app",
        retry_budget=timedelta(seconds=10),
    )
    client = QueueClient.from_settings(settings, structlog.get_logger(), service=service)
    assert client.queue.key == "app:emails"
    assert client.retry.budget == timedelta(seconds=10)
    assert client.service is service


# ---------------------------------------------------------------------------
# Round trip
# ---------------------------------------------------------------------------


async def test_add_then_get_returns_same_id(service: InMemoryQueueService) -> None:
    async with _client(service) as q:
        msg_id = await q.add_message({"a": 1}, 0)
        result = await asyncio.wait_for(q.get_message(), 1)

    assert result == QueueMessage(message={"a": 1}, queue_id=msg_id)


async def test_operations_issued_before_ready_are_deferred(
    service: InMemoryQueueService,
) -> None:
    service.online = False
    async with _client(service) as q:
        add = asyncio.create_task(q.add_message("hello"))
        await asyncio.sleep(0.02)
        assert not add.done()

        service.online = True
        msg_id = await asyncio.wait_for(add, 1)
        result = await asyncio.wait_for(q.get_message(), 1)
    assert result.queue_id == msg_id


async def test_delay_accepts_timedelta(service: InMemoryQueueService) -> None:
    async with _client(service) as q:
        await q.add_message("later", timedelta(seconds=30))
        status = await q.queue_status()
    assert status.hiddenmsgs == 1


async def test_negative_delay_rejected(service: InMemoryQueueService) -> None:
    async with _client(service) as q:
        with pytest.raises(ValueError):
            await q.add_message("x", -1)


async def test_fractional_delay_rejected(service: InMemoryQueueService) -> None:
    async with _client(service) as q:
        with pytest.raises(TypeError):
            await q.add_message("x", 1.5)  # type: ignore[arg-type]


async def test_malformed_message_is_skipped(service: InMemoryQueueService) -> None:
    async with _client(service) as q:
        await asyncio.wait_for(q.readiness.wait_ready(), 1)
        await service.send_message(q.queue, "{definitely not json")
        good_id = await q.add_message({"ok": True})
        result = await asyncio.wait_for(q.get_message(), 1)
    assert result.queue_id == good_id


# ---------------------------------------------------------------------------
# Status / remove / clear
# ---------------------------------------------------------------------------


async def test_queue_status_counts_messages(service: InMemoryQueueService) -> None:
    async with _client(service) as q:
        await q.add_message(1)
        await q.add_message(2)
        status = await q.queue_status()
    assert status.msgs == 2
    assert status.totalsent == 2


async def test_remove_message(service: InMemoryQueueService) -> None:
    async with _client(service) as q:
        msg_id = await q.add_message("gone")
        await q.remove_message(msg_id)
        status = await q.queue_status()
    assert status.msgs == 0


async def test_remove_unknown_message_raises(service: InMemoryQueueService) -> None:
    async with _client(service) as q:
        with pytest.raises(MessageNotFoundError):
            await q.remove_message("does-not-exist")


async def test_clear_queue_then_status_is_empty(service: InMemoryQueueService) -> None:
    async with _client(service) as q:
        await q.add_message("a")
        await q.add_message("b", 60)
        await q.clear_queue()
        status = await q.queue_status()
    assert status.msgs == 0
    assert status.hiddenmsgs == 0
    assert status.totalsent == 0


async def test_clear_queue_does_not_disturb_a_waiting_consumer() -> None:
    class _SlowRecreate(InMemoryQueueService):
        async def delete_queue(self, queue: QueueIdentity) -> None:
            await super().delete_queue(queue)
            await asyncio.sleep(0.02)

    async with _client(_SlowRecreate()) as q:
        consumer = asyncio.create_task(q.get_message())
        await asyncio.wait_for(q.readiness.wait_ready(), 1)
        await asyncio.sleep(0.01)
        await q.clear_queue()
        assert not consumer.done()

        msg_id = await q.add_message("after clear")
        result = await asyncio.wait_for(consumer, 1)
    assert result.queue_id == msg_id


async def test_transport_errors_surface_to_caller(service: InMemoryQueueService) -> None:
    async with _client(service) as q:
        await asyncio.wait_for(q.readiness.wait_ready(), 1)
        service.online = False
        with pytest.raises(TransportError):
            await q.queue_status()
        service.online = True


# ---------------------------------------------------------------------------
# Supervision
# ---------------------------------------------------------------------------


async def test_watch_returns_after_stop(service: InMemoryQueueService) -> None:
    client = _client(service)
    await client.start()
    watcher = asyncio.create_task(client.watch())
    await client.stop()
    await asyncio.wait_for(watcher, 1)
    assert client.state is ConnectionState.DISCONNECTED


async def test_watch_raises_when_budget_exhausted() -> None:
    service = InMemoryQueueService(online=False)
    client = _client(
        service,
        retry=RetryPolicy(
            min_delay=timedelta(milliseconds=1), budget=timedelta(milliseconds=20)
        ),
    )
    async with client:
        with pytest.raises(ConnectionFatalError):
            await asyncio.wait_for(client.watch(), 2)
