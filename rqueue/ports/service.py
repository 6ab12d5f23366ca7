"""
QueueServicePort — the remote delayed / visibility-timeout queue.

Any object satisfying this structural Protocol can act as the service
backend. No base class or registration is required.

Service contract
----------------
connect() / ping()
  - raise TransportError when the service cannot be reached
create_queue()
  - raises QueueExistsError if the queue is already present
delete_queue() / send_message() / get_queue_attributes()
  - raise QueueNotFoundError if the queue is absent
send_message()
  - the message becomes visible `delay` seconds after it was sent
  - raises MessageTooLongError if the body exceeds the queue's maxsize
pop_message()
  - returns the earliest visible message and removes it atomically
  - returns None when no message is visible
  - raises QueueNotFoundError if the queue is absent
  - raises PayloadDecodeError if the body cannot be read as text; the
    message is consumed all the same
delete_message()
  - raises MessageNotFoundError if the id is unknown

Every other I/O failure surfaces as TransportError.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from rqueue.domain.models import QueueAttributes, QueueIdentity, ReceivedMessage


@runtime_checkable
class QueueServicePort(Protocol):
    """
    Minimal interface required by rqueue core.

    Implementing adapters (built-in):
      - InMemoryQueueService — asyncio.Lock-based, for testing
      - RedisQueueService    — Redis via redis.asyncio, RSMQ key layout
    """

    async def connect(self) -> None:
        """Establish (or verify) the connection."""
        ...

    async def ping(self) -> None:
        """Health check on an established connection."""
        ...

    async def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        ...

    async def list_queues(self, namespace: str) -> list[str]:
        """Names of all queues in `namespace`."""
        ...

    async def create_queue(
        self,
        queue: QueueIdentity,
        *,
        vt: int = 30,
        delay: int = 0,
        maxsize: int = 65536,
    ) -> None:
        """
        Create a queue.

        Parameters
        ----------
        vt      : visibility timeout in seconds
        delay   : default delivery delay in seconds
        maxsize : maximum message body length, -1 for unlimited
        """
        ...

    async def delete_queue(self, queue: QueueIdentity) -> None:
        """Delete a queue together with all of its messages."""
        ...

    async def send_message(
        self,
        queue: QueueIdentity,
        message: str,
        delay: int = 0,
    ) -> str:
        """Submit a message. Returns the service-assigned id."""
        ...

    async def pop_message(self, queue: QueueIdentity) -> ReceivedMessage | None:
        """Receive and delete the next visible message."""
        ...

    async def delete_message(self, queue: QueueIdentity, message_id: str) -> None:
        """Delete a message by id."""
        ...

    async def get_queue_attributes(self, queue: QueueIdentity) -> QueueAttributes:
        """Current queue attributes and message counts."""
        ...
