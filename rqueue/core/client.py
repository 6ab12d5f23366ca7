"""
QueueClient — the public face of rqueue.

QueueClient is an async context manager that starts the ConnectionManager on
__aenter__ and stops it on __aexit__. Every operation is deferred through
the ReadinessGate, so it is safe to call them right after construction;
they run once the connection is up and the queue exists.

Usage
-----
    import structlog
    from rqueue import QueueClient

    async with QueueClient("emails", "myapp", structlog.get_logger()) as q:
        msg_id = await q.add_message({"to": "user@example.com"}, delay=0)

        received = await q.get_message()
        process(received.message)

Supervision
-----------
If the service stays unreachable past the retry budget, watch() raises
ConnectionFatalError. Run it next to your workers and shut down on failure:

    async with QueueClient(...) as q:
        worker = asyncio.create_task(consume(q))
        try:
            await q.watch()
        finally:
            worker.cancel()
"""
from __future__ import annotations

import dataclasses
from datetime import timedelta
from types import TracebackType
from typing import Any

from rqueue.adapters.service.redis import RedisQueueService
from rqueue.config import ClientSettings
from rqueue.core import codec
from rqueue.core.backoff import DEFAULT_INTERVALS
from rqueue.core.bootstrap import QueueBootstrapper
from rqueue.core.connection import ConnectionManager, RetryPolicy
from rqueue.core.poller import DeadLetterFn, MessagePoller
from rqueue.core.readiness import Readiness, ReadinessGate
from rqueue.domain.models import (
    ConnectionState,
    QueueAttributes,
    QueueIdentity,
    QueueMessage,
)
from rqueue.ports.logger import StructuredLogger
from rqueue.ports.service import QueueServicePort

_MAX_DELAY = 9_999_999


@dataclasses.dataclass
class QueueClient:
    """
    Readiness-gated client for one delayed queue.

    Parameters
    ----------
    queue_name            : queue to use (created on connect if missing)
    namespace             : key prefix for the queue
    logger                : structured logger (structlog or compatible)
    host, port            : Redis address, used when no service is given
    service               : QueueServicePort; defaults to RedisQueueService(host, port)
    poll_intervals        : backoff schedule for get_message
    not_ready_delay       : readiness re-check interval inside get_message
    retry                 : reconnect timing and budget
    health_check_interval : ping interval while connected
    dead_letter           : optional coroutine receiving undecodable messages
    """

    queue_name: str
    namespace: str
    logger: StructuredLogger
    host: str = "127.0.0.1"
    port: int = 6379
    service: QueueServicePort | None = None
    poll_intervals: tuple[timedelta, ...] = DEFAULT_INTERVALS
    not_ready_delay: timedelta = timedelta(seconds=1)
    retry: RetryPolicy = RetryPolicy()
    health_check_interval: timedelta = timedelta(seconds=5)
    dead_letter: DeadLetterFn | None = None

    queue: QueueIdentity = dataclasses.field(init=False)
    readiness: Readiness = dataclasses.field(init=False, repr=False)
    _gate: ReadinessGate = dataclasses.field(init=False, repr=False)
    _connection: ConnectionManager = dataclasses.field(init=False, repr=False)
    _poller: MessagePoller = dataclasses.field(init=False, repr=False)
    _backend: QueueServicePort = dataclasses.field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.queue_name:
            raise ValueError("queue_name is a required constructor parameter")
        if not self.namespace:
            raise ValueError("namespace is a required constructor parameter")
        if self.logger is None:
            raise ValueError("logger is a required constructor parameter")

        if self.service is None:
            self.service = RedisQueueService(host=self.host, port=self.port)
        self._backend = self.service

        self.queue = QueueIdentity(namespace=self.namespace, name=self.queue_name)
        self.readiness = Readiness(logger=self.logger, queue_name=self.queue_name)
        self._gate = ReadinessGate(self.readiness)
        self._connection = ConnectionManager(
            service=self._backend,
            readiness=self.readiness,
            on_connected=QueueBootstrapper(
                service=self._backend,
                queue=self.queue,
                readiness=self.readiness,
                logger=self.logger,
            ),
            logger=self.logger,
            queue_name=self.queue_name,
            retry=self.retry,
            health_check_interval=self.health_check_interval,
        )
        self._poller = MessagePoller(
            service=self._backend,
            queue=self.queue,
            readiness=self.readiness,
            logger=self.logger,
            intervals=self.poll_intervals,
            not_ready_delay=self.not_ready_delay,
            dead_letter=self.dead_letter,
        )

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        logger: StructuredLogger,
        **kwargs: Any,
    ) -> "QueueClient":
        """Build a client from ClientSettings; kwargs override (e.g. service=...)."""
        params: dict[str, Any] = dict(
            queue_name=settings.queue_name,
            namespace=settings.namespace,
            logger=logger,
            host=settings.host,
            port=settings.port,
            poll_intervals=settings.poll_intervals,
            not_ready_delay=settings.not_ready_delay,
            retry=RetryPolicy(
                min_delay=settings.retry_min_delay, budget=settings.retry_budget
            ),
            health_check_interval=settings.health_check_interval,
        )
        params.update(kwargs)
        return cls(**params)

    # ------------------------------------------------------------------ #
    # Lifecycle                                                            #
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> "QueueClient":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def start(self) -> None:
        """Start connecting in the background."""
        await self._connection.start()

    async def stop(self) -> None:
        """Stop reconnecting and close the service connection."""
        await self._connection.stop()

    async def watch(self) -> None:
        """Return once stopped; raise ConnectionFatalError if the retry budget ran out."""
        await self._connection.wait_fatal()

    @property
    def state(self) -> ConnectionState:
        return self.readiness.state

    @property
    def ready(self) -> bool:
        return self.readiness.is_ready

    # ------------------------------------------------------------------ #
    # Queue operations                                                     #
    # ------------------------------------------------------------------ #

    async def get_message(self) -> QueueMessage:
        """Wait for the next decodable message."""
        return await self._poller.get_message()

    async def add_message(self, message: Any, delay: int | timedelta = 0) -> str:
        """Serialize and enqueue `message`, visible after `delay`. Returns its id."""
        seconds = _delay_seconds(delay)
        body = codec.encode(message)
        return await self._gate.run_when_ready(
            lambda: self._backend.send_message(self.queue, body, seconds)
        )

    async def queue_status(self) -> QueueAttributes:
        """Queue attributes and message counts."""
        return await self._gate.run_when_ready(
            lambda: self._backend.get_queue_attributes(self.queue)
        )

    async def remove_message(self, message_id: str) -> None:
        """Delete a message by id. Raises MessageNotFoundError if absent."""
        await self._gate.run_when_ready(
            lambda: self._backend.delete_message(self.queue, message_id)
        )

    async def clear_queue(self) -> None:
        """Delete and immediately recreate the queue, dropping every message."""

        async def _reset() -> None:
            async with self._poller.paused():
                await self._backend.delete_queue(self.queue)
                await self._backend.create_queue(self.queue)

        await self._gate.run_when_ready(_reset)


def _delay_seconds(delay: int | timedelta) -> int:
    if isinstance(delay, timedelta):
        seconds = int(delay.total_seconds())
    elif isinstance(delay, int) and not isinstance(delay, bool):
        seconds = delay
    else:
        raise TypeError(
            f"delay must be whole seconds (int) or a timedelta, got {delay!r}"
        )
    if not 0 <= seconds <= _MAX_DELAY:
        raise ValueError(f"delay must be between 0 and {_MAX_DELAY} seconds")
    return seconds
