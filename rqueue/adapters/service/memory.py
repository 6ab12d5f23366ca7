"""
InMemoryQueueService — asyncio.Lock-based queue service for testing and development.

Simulates the RSMQ semantics of RedisQueueService in process: per-namespace
queues, delayed visibility, atomic pop, attribute counters and the same id
format. Setting `online = False` simulates an outage: connect(), ping() and
every queue call raise TransportError until it is set back.

Zero external dependencies. Safe for multiple concurrent coroutines in a
single event loop. NOT safe across processes or threads.
"""
from __future__ import annotations

import asyncio
import dataclasses
import time
from collections.abc import Callable

from rqueue.domain.errors import (
    MessageNotFoundError,
    MessageTooLongError,
    QueueExistsError,
    QueueNotFoundError,
    TransportError,
)
from rqueue.domain.models import (
    QueueAttributes,
    QueueIdentity,
    ReceivedMessage,
    new_message_id,
    sent_ms_from_id,
)


@dataclasses.dataclass
class _StoredMessage:
    body: str
    visible_at: int  # ms
    seq: int = 0
    rc: int = 0
    fr: int = 0


@dataclasses.dataclass
class _StoredQueue:
    vt: int
    delay: int
    maxsize: int
    created: int
    modified: int
    totalrecv: int = 0
    totalsent: int = 0
    messages: dict[str, _StoredMessage] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass
class InMemoryQueueService:
    """
    In-process queue service.

    Parameters
    ----------
    online : False makes every call fail with TransportError
    clock  : returns unix time in seconds (override to control visibility)
    """

    online: bool = True
    clock: Callable[[], float] = time.time

    def __post_init__(self) -> None:
        self._queues: dict[tuple[str, str], _StoredQueue] = {}
        self._lock: asyncio.Lock = asyncio.Lock()
        self._seq: int = 0
        self.connects: int = 0
        self.closes: int = 0

    # ------------------------------------------------------------------ #
    # Connection                                                           #
    # ------------------------------------------------------------------ #

    async def connect(self) -> None:
        self.connects += 1
        self._check_online()

    async def ping(self) -> None:
        self._check_online()

    async def close(self) -> None:
        self.closes += 1

    # ------------------------------------------------------------------ #
    # Queue operations                                                     #
    # ------------------------------------------------------------------ #

    async def list_queues(self, namespace: str) -> list[str]:
        async with self._lock:
            self._check_online()
            return sorted(name for ns, name in self._queues if ns == namespace)

    async def create_queue(
        self,
        queue: QueueIdentity,
        *,
        vt: int = 30,
        delay: int = 0,
        maxsize: int = 65536,
    ) -> None:
        async with self._lock:
            self._check_online()
            ident = (queue.namespace, queue.name)
            if ident in self._queues:
                raise QueueExistsError(queue.name)
            now = int(self.clock())
            self._queues[ident] = _StoredQueue(
                vt=vt, delay=delay, maxsize=maxsize, created=now, modified=now
            )

    async def delete_queue(self, queue: QueueIdentity) -> None:
        async with self._lock:
            self._check_online()
            if self._queues.pop((queue.namespace, queue.name), None) is None:
                raise QueueNotFoundError(queue.name)

    async def send_message(
        self,
        queue: QueueIdentity,
        message: str,
        delay: int = 0,
    ) -> str:
        async with self._lock:
            self._check_online()
            q = self._get(queue)
            if q.maxsize != -1 and len(message) > q.maxsize:
                raise MessageTooLongError(
                    f"Message is longer than the queue maxsize ({q.maxsize})"
                )
            now_us = int(self.clock() * 1_000_000)
            message_id = new_message_id(now_us)
            q.messages[message_id] = _StoredMessage(
                body=message,
                visible_at=now_us // 1000 + delay * 1000,
                seq=self._seq,
            )
            self._seq += 1
            q.totalsent += 1
            return message_id

    async def pop_message(self, queue: QueueIdentity) -> ReceivedMessage | None:
        async with self._lock:
            self._check_online()
            q = self._get(queue)
            now_ms = int(self.clock() * 1000)
            visible = [
                (m.visible_at, m.seq, mid)
                for mid, m in q.messages.items()
                if m.visible_at <= now_ms
            ]
            if not visible:
                return None
            _, _, message_id = min(visible)
            stored = q.messages.pop(message_id)
            q.totalrecv += 1
            return ReceivedMessage(
                id=message_id,
                message=stored.body,
                rc=stored.rc + 1,
                fr=stored.fr or now_ms,
                sent=sent_ms_from_id(message_id),
            )

    async def delete_message(self, queue: QueueIdentity, message_id: str) -> None:
        async with self._lock:
            self._check_online()
            q = self._get(queue)
            if q.messages.pop(message_id, None) is None:
                raise MessageNotFoundError(message_id)

    async def get_queue_attributes(self, queue: QueueIdentity) -> QueueAttributes:
        async with self._lock:
            self._check_online()
            q = self._get(queue)
            now_ms = int(self.clock() * 1000)
            return QueueAttributes(
                vt=q.vt,
                delay=q.delay,
                maxsize=q.maxsize,
                totalrecv=q.totalrecv,
                totalsent=q.totalsent,
                created=q.created,
                modified=q.modified,
                msgs=len(q.messages),
                hiddenmsgs=sum(
                    1 for m in q.messages.values() if m.visible_at > now_ms
                ),
            )

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    def _check_online(self) -> None:
        if not self.online:
            raise TransportError(
                "In-memory service offline", ConnectionError("connection refused")
            )

    def _get(self, queue: QueueIdentity) -> _StoredQueue:
        try:
            return self._queues[(queue.namespace, queue.name)]
        except KeyError:
            raise QueueNotFoundError(queue.name) from None
