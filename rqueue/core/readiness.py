"""
Readiness — connection state plus a wake-up signal for deferred work.

Readiness is true only in ConnectionState.READY: connected and the queue
confirmed to exist. The state is written by ConnectionManager and
QueueBootstrapper; everything else only reads it or waits on it.

ReadinessGate defers an action until readiness is true:

    gate = ReadinessGate(readiness)
    msg_id = await gate.run_when_ready(lambda: service.send_message(queue, body))

Waiters block on an asyncio.Event that is set exactly while the state is
READY, so they wake on the transition instead of polling. Each caller waits
independently; once readiness flips, all of them become runnable with no
ordering between them.
"""
from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable
from typing import TypeVar

from rqueue.domain.models import ConnectionState
from rqueue.ports.logger import StructuredLogger

T = TypeVar("T")


@dataclasses.dataclass
class Readiness:
    """Current ConnectionState with an event mirroring `is_ready`."""

    logger: StructuredLogger
    queue_name: str = ""

    state: ConnectionState = dataclasses.field(
        default=ConnectionState.DISCONNECTED, init=False
    )
    _ready: asyncio.Event = dataclasses.field(
        default_factory=asyncio.Event, init=False, repr=False
    )

    @property
    def is_ready(self) -> bool:
        return self.state is ConnectionState.READY

    def transition(self, state: ConnectionState) -> None:
        """Move to `state` and update the ready event to match."""
        if state is self.state:
            return
        self.logger.debug(
            "connection_state_changed",
            queue_name=self.queue_name,
            previous=self.state.value,
            state=state.value,
        )
        self.state = state
        if state is ConnectionState.READY:
            self._ready.set()
        else:
            self._ready.clear()

    async def wait_ready(self) -> None:
        """Block until the state is READY."""
        while not self.is_ready:
            await self._ready.wait()


@dataclasses.dataclass
class ReadinessGate:
    """
    Runs actions once the connection is usable.

    The gate never fails on its own; the returned value or raised exception
    is always the action's.
    """

    readiness: Readiness

    async def run_when_ready(self, action: Callable[[], Awaitable[T]]) -> T:
        """Await `action()` now if ready, otherwise after readiness turns true."""
        if not self.readiness.is_ready:
            await self.readiness.wait_ready()
        return await action()
