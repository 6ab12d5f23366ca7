"""
ConnectionManager — keep the queue service connection alive.

One background task runs the whole lifecycle:

    CONNECTING ──connect()──> bootstrap ──> READY ──ping() fails──> RECONNECTING
        ^                                                                │
        └────────────────────────── connect() again ─────────────────────┘

Retry policy
------------
After failed attempt n (1-indexed) the manager waits max(2**n ms, min_delay),
with no upper cap. Retry time is measured from the first failure of an
outage; once it exceeds the budget (default 3 minutes) the manager stops
retrying and raises ConnectionFatalError into wait_fatal(). It never
terminates the process itself; the supervising caller owns that decision.

Health checks
-------------
While connected the manager pings every `health_check_interval`. A failed
ping forces readiness false at once, before any reconnect attempt.
"""
from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable
from datetime import timedelta

from rqueue.core.readiness import Readiness
from rqueue.domain.errors import ConnectionFatalError, RQueueError
from rqueue.domain.models import ConnectionState
from rqueue.ports.logger import StructuredLogger
from rqueue.ports.service import QueueServicePort


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    """
    Reconnect timing.

    min_delay : floor for the wait between attempts (default 1 s)
    budget    : total retry time before giving up (default 3 min)
    """

    min_delay: timedelta = timedelta(seconds=1)
    budget: timedelta = timedelta(minutes=3)

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt `attempt`."""
        return max(2**attempt / 1000, self.min_delay.total_seconds())


@dataclasses.dataclass
class ConnectionManager:
    """
    Owns the service connection and drives the readiness state.

    Parameters
    ----------
    service               : any QueueServicePort implementation
    readiness             : shared readiness signal
    on_connected          : called after every successful connect (the bootstrapper)
    logger                : structured logger
    retry                 : reconnect timing
    health_check_interval : time between pings while connected
    """

    service: QueueServicePort
    readiness: Readiness
    on_connected: Callable[[], Awaitable[object]]
    logger: StructuredLogger
    queue_name: str = ""
    retry: RetryPolicy = RetryPolicy()
    health_check_interval: timedelta = timedelta(seconds=5)

    _task: asyncio.Task[None] | None = dataclasses.field(
        default=None, init=False, repr=False
    )
    _fatal: asyncio.Future[None] | None = dataclasses.field(
        default=None, init=False, repr=False
    )

    # ------------------------------------------------------------------ #
    # Lifecycle                                                            #
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Start the background connection task."""
        if self._task is not None:
            raise RuntimeError("ConnectionManager is already running")
        self._fatal = asyncio.get_running_loop().create_future()
        # Failures are logged before they land here; watch() is optional.
        self._fatal.add_done_callback(_mark_retrieved)
        self._task = asyncio.create_task(
            self._run(self._fatal), name=f"rqueue-connection-{self.queue_name}"
        )

    async def stop(self) -> None:
        """Cancel the connection task, close the service, go DISCONNECTED."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.service.close()
        self.readiness.transition(ConnectionState.DISCONNECTED)
        if self._fatal is not None and not self._fatal.done():
            self._fatal.set_result(None)

    async def wait_fatal(self) -> None:
        """
        Block until the manager stops.

        Returns normally after stop(); raises ConnectionFatalError when the
        retry budget was exhausted, or the error that killed the task.
        """
        if self._fatal is None:
            raise RuntimeError("ConnectionManager is not running")
        await asyncio.shield(self._fatal)

    # ------------------------------------------------------------------ #
    # Internal machinery                                                   #
    # ------------------------------------------------------------------ #

    async def _run(self, fatal: asyncio.Future[None]) -> None:
        """Run connection cycles; any failure ends up in wait_fatal()."""
        try:
            await self._cycle_forever()
        except Exception as exc:
            if not isinstance(exc, ConnectionFatalError):
                self.logger.error(
                    "connection_task_failed",
                    queue_name=self.queue_name,
                    error=repr(exc),
                )
            self.readiness.transition(ConnectionState.DISCONNECTED)
            await self._close_quietly()
            if not fatal.done():
                fatal.set_exception(exc)

    async def _close_quietly(self) -> None:
        try:
            await self.service.close()
        except RQueueError as exc:
            self.logger.warning(
                "redis_close_failed", queue_name=self.queue_name, error=str(exc)
            )

    async def _cycle_forever(self) -> None:
        self.readiness.transition(ConnectionState.CONNECTING)
        while True:
            await self._connect_with_retry()

            self.logger.info("redis_connected", queue_name=self.queue_name)
            self.readiness.transition(ConnectionState.CONNECTING)
            await self.on_connected()

            await self._monitor()
            self.logger.info("redis_reconnecting", queue_name=self.queue_name)
            self.readiness.transition(ConnectionState.RECONNECTING)

    async def _connect_with_retry(self) -> None:
        loop = asyncio.get_running_loop()
        started: float | None = None
        attempt = 0
        while True:
            try:
                await self.service.connect()
                return
            except RQueueError as exc:
                attempt += 1
                now = loop.time()
                if started is None:
                    started = now
                elapsed = now - started
                self.logger.error(
                    "redis_connect_failed",
                    queue_name=self.queue_name,
                    error=str(exc),
                    attempt=attempt,
                    elapsed=elapsed,
                )
                if elapsed > self.retry.budget.total_seconds():
                    self.logger.error(
                        "redis_retry_exhausted",
                        queue_name=self.queue_name,
                        attempts=attempt,
                    )
                    raise ConnectionFatalError(elapsed, attempt) from exc
                await asyncio.sleep(self.retry.delay(attempt))

    async def _monitor(self) -> None:
        """Ping until the connection fails."""
        while True:
            await asyncio.sleep(self.health_check_interval.total_seconds())
            try:
                await self.service.ping()
            except RQueueError as exc:
                self.logger.info(
                    "redis_error", queue_name=self.queue_name, error=str(exc)
                )
                return


def _mark_retrieved(fut: asyncio.Future[None]) -> None:
    if not fut.cancelled():
        fut.exception()
