"""
Exception hierarchy for rqueue.

RQueueError
├── TransportError        — driver / network failure (wraps original exception)
├── ConnectionFatalError  — reconnect budget exhausted, no further retries
├── QueueExistsError      — create_queue on a queue that already exists
├── QueueNotFoundError    — operation on a queue that does not exist
├── MessageNotFoundError  — message id not present in the queue
├── MessageTooLongError   — message body exceeds the queue's maxsize
└── PayloadDecodeError    — message body is not a valid JSON payload
"""

from __future__ import annotations


class RQueueError(Exception):
    """Base class for all rqueue exceptions."""


class TransportError(RQueueError):
    """
    Wraps an underlying I/O failure from a queue service adapter.

    Attributes
    ----------
    cause : Exception
        The original exception from the driver.
    """

    def __init__(self, message: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"{message}: {cause}")


class ConnectionFatalError(RQueueError):
    """
    Raised when the connection could not be re-established within the retry budget.

    The connection manager stops retrying after raising this. Whoever
    supervises the client decides what happens next (typically shutdown).
    """

    def __init__(self, elapsed: float, attempts: int) -> None:
        self.elapsed = elapsed
        self.attempts = attempts
        super().__init__(
            f"Connection retry time exhausted after {attempts} attempts "
            f"({elapsed:.1f}s)"
        )


class QueueExistsError(RQueueError):
    """Raised when creating a queue that already exists."""

    def __init__(self, queue: str) -> None:
        self.queue = queue
        super().__init__(f"Queue {queue!r} already exists")


class QueueNotFoundError(RQueueError):
    """Raised when the target queue does not exist."""

    def __init__(self, queue: str) -> None:
        self.queue = queue
        super().__init__(f"Queue {queue!r} not found")


class MessageNotFoundError(RQueueError):
    """Raised when a message id is not present in the queue."""

    def __init__(self, message_id: str) -> None:
        self.message_id = message_id
        super().__init__(f"Message {message_id!r} not found")


class MessageTooLongError(RQueueError):
    """Raised when a message body is longer than the queue's maxsize."""


class PayloadDecodeError(RQueueError):
    """
    Raised when a message body cannot be parsed into a structured value.

    Attributes
    ----------
    raw   : str
        The undecodable message body.
    cause : Exception
        The parser error.
    """

    def __init__(self, raw: str, cause: Exception) -> None:
        self.raw = raw
        self.cause = cause
        super().__init__(f"Could not decode message payload: {cause}")
