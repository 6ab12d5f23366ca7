"""
MessagePoller — single-flight, adaptive-backoff message retrieval.

get_message() completes once per call with the next decodable message:

  1. not ready        → sleep not_ready_delay (1 s), check again
  2. ready            → pop one message (holding the single-flight lock)
  3. nothing visible  → advance the backoff schedule, sleep, go to 1
  4. message received → reset the schedule and decode the payload
       decoded        → return it
       malformed      → log, hand to dead_letter, sleep the first interval, go to 1
  5. transport error (or a missing queue) from the pop propagates to the caller

The pop removes the message from the service, so a malformed payload is
consumed rather than redelivered; dead_letter is the only place it goes.
A failing dead_letter hook is logged and does not end the call.
"""
from __future__ import annotations

import asyncio
import contextlib
import dataclasses
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import timedelta

from rqueue.core import codec
from rqueue.core.backoff import DEFAULT_INTERVALS, BackoffSchedule
from rqueue.core.readiness import Readiness
from rqueue.domain.errors import PayloadDecodeError
from rqueue.domain.models import QueueIdentity, QueueMessage, ReceivedMessage
from rqueue.ports.logger import StructuredLogger
from rqueue.ports.service import QueueServicePort

DeadLetterFn = Callable[[ReceivedMessage, PayloadDecodeError], Awaitable[None]]


@dataclasses.dataclass
class MessagePoller:
    """
    Pull-based consumer for one queue.

    Parameters
    ----------
    service         : any QueueServicePort implementation
    queue           : the queue to pop from
    readiness       : shared readiness signal
    logger          : structured logger
    intervals       : backoff schedule stages
    not_ready_delay : pause between readiness checks
    dead_letter     : optional coroutine receiving malformed messages
    """

    service: QueueServicePort
    queue: QueueIdentity
    readiness: Readiness
    logger: StructuredLogger
    intervals: tuple[timedelta, ...] = DEFAULT_INTERVALS
    not_ready_delay: timedelta = timedelta(seconds=1)
    dead_letter: DeadLetterFn | None = None

    _inflight: asyncio.Lock = dataclasses.field(
        default_factory=asyncio.Lock, init=False, repr=False
    )

    async def get_message(self) -> QueueMessage:
        """Wait for, pop and decode the next message."""
        schedule = BackoffSchedule(self.intervals)
        self.logger.info("waiting_for_queue_message", queue_name=self.queue.name)

        while True:
            if not self.readiness.is_ready:
                await asyncio.sleep(self.not_ready_delay.total_seconds())
                continue

            try:
                async with self._inflight:
                    received = await self.service.pop_message(self.queue)
            except PayloadDecodeError as exc:
                # Unreadable body: consumed by the pop, nothing to hand on.
                schedule.reset()
                self.logger.error(
                    "message_payload_invalid",
                    queue_name=self.queue.name,
                    raw=exc.raw,
                    error=str(exc.cause),
                )
                await asyncio.sleep(schedule.first.total_seconds())
                continue

            if received is None:
                wait = schedule.advance()
                self.logger.debug(
                    "get_message_tick",
                    queue_name=self.queue.name,
                    interval_idx=schedule.idx,
                )
                await asyncio.sleep(wait.total_seconds())
                continue

            schedule.reset()
            self.logger.info(
                "message_received",
                queue_name=self.queue.name,
                queue_message=received.model_dump(),
            )
            try:
                payload = codec.decode(received.message)
            except PayloadDecodeError as exc:
                self.logger.error(
                    "message_payload_invalid",
                    queue_name=self.queue.name,
                    queue_message=received.model_dump(),
                    error=str(exc.cause),
                )
                if self.dead_letter is not None:
                    await self._hand_to_dead_letter(self.dead_letter, received, exc)
                await asyncio.sleep(schedule.first.total_seconds())
                continue

            return QueueMessage(message=payload, queue_id=received.id)

    @contextlib.asynccontextmanager
    async def paused(self) -> AsyncIterator[None]:
        """Hold off pops while the caller works on the queue itself."""
        async with self._inflight:
            yield

    async def _hand_to_dead_letter(
        self,
        dead_letter: DeadLetterFn,
        received: ReceivedMessage,
        error: PayloadDecodeError,
    ) -> None:
        try:
            await dead_letter(received, error)
        except Exception as exc:
            self.logger.error(
                "dead_letter_failed",
                queue_name=self.queue.name,
                message_id=received.id,
                error=str(exc),
            )
