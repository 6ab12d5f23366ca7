"""
Domain models for rqueue — backed by Pydantic v2.

All models are frozen (immutable). They describe the data exchanged with the
remote queue service, not the service's storage layout.
"""

import re
import secrets
import string
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_QUEUE_NAME = re.compile(r"^[A-Za-z0-9_-]{1,160}$")
_ID_ALPHABET = string.ascii_letters + string.digits
_BASE36 = string.digits + string.ascii_lowercase


class ConnectionState(str, Enum):
    """Lifecycle states of the connection to the queue service."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    RECONNECTING = "reconnecting"


class QueueIdentity(BaseModel):
    """
    The single logical queue a client talks to.

    namespace — key prefix shared by all queues of one application
    name      — queue name, alphanumeric plus '-' and '_', max 160 chars
    """

    model_config = ConfigDict(frozen=True)

    namespace: str = Field(min_length=1)
    name: str

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        if not _QUEUE_NAME.match(v):
            raise ValueError(
                "queue name must be 1-160 chars of letters, digits, '-' or '_'"
            )
        return v

    @property
    def key(self) -> str:
        """Sorted set of message ids scored by visible-at milliseconds."""
        return f"{self.namespace}:{self.name}"

    @property
    def hash_key(self) -> str:
        """Hash holding queue attributes and message bodies."""
        return f"{self.namespace}:{self.name}:Q"

    @property
    def index_key(self) -> str:
        """Set of all queue names in the namespace."""
        return queues_key(self.namespace)

    def __str__(self) -> str:
        return self.key


class ReceivedMessage(BaseModel):
    """
    A message as returned by the service's pop primitive.

    id      — 32-char service-assigned identifier
    message — raw message body (serialized payload)
    rc      — receive count
    fr      — first receive timestamp, ms
    sent    — send timestamp, ms (derived from the id)
    """

    model_config = ConfigDict(frozen=True)

    id: str
    message: str
    rc: int = 1
    fr: int = 0
    sent: int = 0


class QueueMessage(BaseModel):
    """A decoded message handed to the consumer."""

    model_config = ConfigDict(frozen=True)

    message: Any
    queue_id: str


class QueueAttributes(BaseModel):
    """
    Queue attributes reported by the service.

    vt / delay are seconds; created / modified are unix seconds;
    msgs counts all messages, hiddenmsgs those not yet visible.
    """

    model_config = ConfigDict(frozen=True)

    vt: int
    delay: int
    maxsize: int
    totalrecv: int = 0
    totalsent: int = 0
    created: int
    modified: int
    msgs: int = 0
    hiddenmsgs: int = 0


def queues_key(namespace: str) -> str:
    """Key of the set holding every queue name of a namespace."""
    return f"{namespace}:QUEUES"


def new_message_id(now_us: int) -> str:
    """
    Build a message id from a microsecond timestamp.

    The first 10 characters are the timestamp in base36, so ids sort by send
    time and the send time can be recovered with sent_ms_from_id().
    """
    digits = ""
    n = now_us
    while n:
        n, r = divmod(n, 36)
        digits = _BASE36[r] + digits
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(22))
    return digits.rjust(10, "0") + suffix


def sent_ms_from_id(message_id: str) -> int:
    """Send timestamp in ms encoded in the id prefix."""
    return int(message_id[:10], 36) // 1000
