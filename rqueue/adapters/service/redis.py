"""
RedisQueueService — Redis adapter with the RSMQ key layout, via redis.asyncio.

Redis data structures (RSMQ compatible)
---------------------------------------
- {ns}:QUEUES      Set of queue names in the namespace
- {ns}:{qname}     Sorted set of message ids, score = visible-at ms
- {ns}:{qname}:Q   Hash: vt, delay, maxsize, created, modified, totalrecv,
                   totalsent, plus per message {id}, {id}:rc, {id}:fr

Timestamps come from the Redis server (TIME), so every client agrees on
when a delayed message becomes visible. pop_message() is one Lua script:
select the earliest visible id, read it, and delete it atomically.

The default client decodes replies with errors="replace", so a body that
is not valid UTF-8 still comes back as a (malformed) message. With an
injected strict client pop_message() raises PayloadDecodeError instead.

Every redis-py error is wrapped in TransportError; queue-level failures
(QueueNotFoundError, QueueExistsError, ...) are raised as-is.
"""
from __future__ import annotations

import contextlib
import dataclasses
from collections.abc import Iterator
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from rqueue.domain.errors import (
    MessageNotFoundError,
    MessageTooLongError,
    PayloadDecodeError,
    QueueExistsError,
    QueueNotFoundError,
    TransportError,
)
from rqueue.domain.models import (
    QueueAttributes,
    QueueIdentity,
    ReceivedMessage,
    new_message_id,
    queues_key,
    sent_ms_from_id,
)

logger = structlog.get_logger(__name__)

# KEYS[1] = message sorted set
# KEYS[2] = queue hash
# ARGV[1] = current time, ms
# Returns nil when the queue does not exist, {} when nothing is visible.
POP_SCRIPT = """
if redis.call('EXISTS', KEYS[2]) == 0 then
    return false
end

local msg = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, 1)
if #msg == 0 then
    return {}
end

local id = msg[1]
redis.call('HINCRBY', KEYS[2], 'totalrecv', 1)
local body = redis.call('HGET', KEYS[2], id)
local rc = redis.call('HINCRBY', KEYS[2], id .. ':rc', 1)
local fr = ARGV[1]
if rc > 1 then
    fr = redis.call('HGET', KEYS[2], id .. ':fr')
end

redis.call('ZREM', KEYS[1], id)
redis.call('HDEL', KEYS[2], id, id .. ':rc', id .. ':fr')
return {id, body, rc, fr}
"""


@dataclasses.dataclass
class RedisQueueService:
    """
    Redis-backed queue service.

    Parameters
    ----------
    host, port, db, password : Redis connection parameters
    connect_timeout          : socket connect timeout, seconds
    socket_timeout           : per-command timeout, seconds
    client                   : redis.asyncio.Redis — created lazily if omitted
    """

    host: str = "127.0.0.1"
    port: int = 6379
    db: int = 0
    password: str | None = None
    connect_timeout: float = 5.0
    socket_timeout: float = 5.0
    client: Any = None

    _redis: Any = dataclasses.field(default=None, init=False, repr=False)
    _pop: Any = dataclasses.field(default=None, init=False, repr=False)

    def _get_redis(self) -> Any:
        """Get or create the Redis client (connections are opened on first command)."""
        if self._redis is None:
            if self.client is not None:
                self._redis = self.client
            else:
                self._redis = aioredis.Redis(
                    host=self.host,
                    port=self.port,
                    db=self.db,
                    password=self.password,
                    decode_responses=True,
                    encoding_errors="replace",
                    socket_connect_timeout=self.connect_timeout,
                    socket_timeout=self.socket_timeout,
                )
                logger.debug("redis_client_created", host=self.host, port=self.port)
            self._pop = self._redis.register_script(POP_SCRIPT)
        return self._redis

    # ------------------------------------------------------------------ #
    # Connection                                                           #
    # ------------------------------------------------------------------ #

    async def connect(self) -> None:
        with _translate("connect"):
            await self._get_redis().ping()

    async def ping(self) -> None:
        with _translate("ping"):
            await self._get_redis().ping()

    async def close(self) -> None:
        if self._redis is None:
            return
        with _translate("close"):
            await self._redis.aclose()
        self._redis = None
        self._pop = None

    # ------------------------------------------------------------------ #
    # Queue operations                                                     #
    # ------------------------------------------------------------------ #

    async def list_queues(self, namespace: str) -> list[str]:
        with _translate("list_queues"):
            names = await self._get_redis().smembers(queues_key(namespace))
        return sorted(names)

    async def create_queue(
        self,
        queue: QueueIdentity,
        *,
        vt: int = 30,
        delay: int = 0,
        maxsize: int = 65536,
    ) -> None:
        r = self._get_redis()
        with _translate("create_queue"):
            now, _ = await r.time()
            async with r.pipeline(transaction=True) as pipe:
                pipe.hsetnx(queue.hash_key, "vt", vt)
                pipe.hsetnx(queue.hash_key, "delay", delay)
                pipe.hsetnx(queue.hash_key, "maxsize", maxsize)
                pipe.hsetnx(queue.hash_key, "created", now)
                pipe.hsetnx(queue.hash_key, "modified", now)
                results = await pipe.execute()
            if not results[0]:
                raise QueueExistsError(queue.name)
            await r.sadd(queue.index_key, queue.name)

    async def delete_queue(self, queue: QueueIdentity) -> None:
        r = self._get_redis()
        with _translate("delete_queue"):
            async with r.pipeline(transaction=True) as pipe:
                pipe.delete(queue.hash_key)
                pipe.delete(queue.key)
                pipe.srem(queue.index_key, queue.name)
                deleted, _, _ = await pipe.execute()
        if deleted == 0:
            raise QueueNotFoundError(queue.name)

    async def send_message(
        self,
        queue: QueueIdentity,
        message: str,
        delay: int = 0,
    ) -> str:
        r = self._get_redis()
        with _translate("send_message"):
            _, _, maxsize = await r.hmget(queue.hash_key, "vt", "delay", "maxsize")
            if maxsize is None:
                raise QueueNotFoundError(queue.name)
            if int(maxsize) != -1 and len(message) > int(maxsize):
                raise MessageTooLongError(
                    f"Message is longer than the queue maxsize ({maxsize})"
                )

            sec, usec = await r.time()
            now_us = int(sec) * 1_000_000 + int(usec)
            message_id = new_message_id(now_us)
            async with r.pipeline(transaction=True) as pipe:
                pipe.zadd(queue.key, {message_id: now_us // 1000 + delay * 1000})
                pipe.hset(queue.hash_key, message_id, message)
                pipe.hincrby(queue.hash_key, "totalsent", 1)
                await pipe.execute()
        return message_id

    async def pop_message(self, queue: QueueIdentity) -> ReceivedMessage | None:
        r = self._get_redis()
        with _translate("pop_message"):
            now_ms = await _now_ms(r)
            try:
                result = await self._pop(
                    keys=[queue.key, queue.hash_key], args=[now_ms]
                )
            except UnicodeDecodeError as exc:
                # Strict client: the script has already removed the message.
                raw = exc.object.decode("utf-8", "replace")
                raise PayloadDecodeError(raw, exc) from exc
        if result is None:
            raise QueueNotFoundError(queue.name)
        if not result:
            return None
        message_id, body, rc, fr = result
        return ReceivedMessage(
            id=message_id,
            message=body or "",
            rc=int(rc),
            fr=int(fr),
            sent=sent_ms_from_id(message_id),
        )

    async def delete_message(self, queue: QueueIdentity, message_id: str) -> None:
        r = self._get_redis()
        with _translate("delete_message"):
            async with r.pipeline(transaction=True) as pipe:
                pipe.zrem(queue.key, message_id)
                pipe.hdel(
                    queue.hash_key,
                    message_id,
                    f"{message_id}:rc",
                    f"{message_id}:fr",
                )
                removed, fields = await pipe.execute()
        if removed != 1 or fields == 0:
            raise MessageNotFoundError(message_id)

    async def get_queue_attributes(self, queue: QueueIdentity) -> QueueAttributes:
        r = self._get_redis()
        with _translate("get_queue_attributes"):
            now_ms = await _now_ms(r)
            async with r.pipeline(transaction=True) as pipe:
                pipe.hmget(
                    queue.hash_key,
                    "vt",
                    "delay",
                    "maxsize",
                    "totalrecv",
                    "totalsent",
                    "created",
                    "modified",
                )
                pipe.zcard(queue.key)
                pipe.zcount(queue.key, now_ms, "+inf")
                attrs, msgs, hidden = await pipe.execute()

        vt, delay, maxsize, totalrecv, totalsent, created, modified = attrs
        if vt is None:
            raise QueueNotFoundError(queue.name)
        return QueueAttributes(
            vt=int(vt),
            delay=int(delay),
            maxsize=int(maxsize),
            totalrecv=int(totalrecv or 0),
            totalsent=int(totalsent or 0),
            created=int(created),
            modified=int(modified),
            msgs=int(msgs),
            hiddenmsgs=int(hidden),
        )


async def _now_ms(r: Any) -> int:
    sec, usec = await r.time()
    return int(sec) * 1000 + int(usec) // 1000


@contextlib.contextmanager
def _translate(operation: str) -> Iterator[None]:
    """Re-raise driver and socket failures as TransportError."""
    try:
        yield
    except (RedisError, OSError) as exc:
        raise TransportError(f"Redis {operation} failed", exc) from exc
