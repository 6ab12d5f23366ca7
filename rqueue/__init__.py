"""
rqueue — readiness-gated client for a Redis delayed message queue.

Talks to queues stored in the RSMQ (Redis Simple Message Queue) layout.
The client hides the connection lifecycle: it reconnects on failure, makes
sure the queue exists after every connect, and defers every operation until
the connection is usable. Messages are retrieved with an adaptive poll
schedule (100 ms while busy, backing off to 5 s when idle).

Quick start
-----------
    import asyncio
    from rqueue import QueueClient, log

    async def main():
        log.configure("info")
        async with QueueClient("emails", "myapp", log.get_logger()) as q:
            # Enqueue work, visible after 10 seconds
            msg_id = await q.add_message({"to": "user@example.com"}, delay=10)

            # Wait for and consume the next message
            received = await q.get_message()
            print(received.queue_id, received.message)

    asyncio.run(main())

Service adapters
----------------
  - RedisQueueService     — Redis via redis.asyncio (default)
  - InMemoryQueueService  — for tests and examples

Custom adapters implement QueueServicePort (connect, ping, close,
list_queues, create_queue, delete_queue, send_message, pop_message,
delete_message, get_queue_attributes).

Architecture
------------
Follows the Ports & Adapters pattern:
  domain/   — pure value types (QueueIdentity, QueueMessage, ConnectionState)
  ports/    — Protocol interfaces (QueueServicePort, StructuredLogger)
  core/     — business logic (QueueClient, ConnectionManager, MessagePoller)
  adapters/ — concrete queue services
"""
from __future__ import annotations

from rqueue import log
from rqueue.adapters.service.memory import InMemoryQueueService
from rqueue.adapters.service.redis import RedisQueueService
from rqueue.config import ClientSettings
from rqueue.core.backoff import DEFAULT_INTERVALS, BackoffSchedule
from rqueue.core.client import QueueClient
from rqueue.core.connection import ConnectionManager, RetryPolicy
from rqueue.core.poller import MessagePoller
from rqueue.core.readiness import Readiness, ReadinessGate
from rqueue.domain.errors import (
    ConnectionFatalError,
    MessageNotFoundError,
    MessageTooLongError,
    PayloadDecodeError,
    QueueExistsError,
    QueueNotFoundError,
    RQueueError,
    TransportError,
)
from rqueue.domain.models import (
    ConnectionState,
    QueueAttributes,
    QueueIdentity,
    QueueMessage,
    ReceivedMessage,
)
from rqueue.ports.logger import StructuredLogger
from rqueue.ports.service import QueueServicePort

__all__ = [
    # Domain models
    "ConnectionState",
    "QueueAttributes",
    "QueueIdentity",
    "QueueMessage",
    "ReceivedMessage",
    # Errors
    "RQueueError",
    "ConnectionFatalError",
    "MessageNotFoundError",
    "MessageTooLongError",
    "PayloadDecodeError",
    "QueueExistsError",
    "QueueNotFoundError",
    "TransportError",
    # Ports (for typing custom adapters and loggers)
    "QueueServicePort",
    "StructuredLogger",
    # High-level client API
    "QueueClient",
    "ClientSettings",
    # Building blocks
    "BackoffSchedule",
    "DEFAULT_INTERVALS",
    "ConnectionManager",
    "MessagePoller",
    "Readiness",
    "ReadinessGate",
    "RetryPolicy",
    # Built-in service adapters
    "InMemoryQueueService",
    "RedisQueueService",
    # Logging setup
    "log",
]
