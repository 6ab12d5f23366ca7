"""
QueueBootstrapper — make sure the target queue exists, then flip readiness.

Runs after every successful (re)connect. The sequence is idempotent:
list the namespace's queues, create ours only when it is missing, and treat
a concurrent creator winning the race (QueueExistsError) as success.

A failure leaves the client non-ready. There is no separate bootstrap
retry; the next full reconnect cycle runs it again.
"""
from __future__ import annotations

import dataclasses

from rqueue.core.readiness import Readiness
from rqueue.domain.errors import QueueExistsError, RQueueError
from rqueue.domain.models import ConnectionState, QueueIdentity
from rqueue.ports.logger import StructuredLogger
from rqueue.ports.service import QueueServicePort


@dataclasses.dataclass
class QueueBootstrapper:
    service: QueueServicePort
    queue: QueueIdentity
    readiness: Readiness
    logger: StructuredLogger

    async def __call__(self) -> bool:
        """Ensure the queue exists. Returns True when the client became ready."""
        self.logger.info("queue_bootstrap_started", queue_name=self.queue.name)
        try:
            names = await self.service.list_queues(self.queue.namespace)
            if self.queue.name in names:
                self.logger.info("queue_found", queue_name=self.queue.name)
            else:
                self.logger.info(
                    "queue_not_found_creating", queue_name=self.queue.name
                )
                try:
                    await self.service.create_queue(self.queue)
                except QueueExistsError:
                    self.logger.info("queue_found", queue_name=self.queue.name)
                else:
                    self.logger.info("queue_created", queue_name=self.queue.name)
        except RQueueError as exc:
            self.logger.error(
                "queue_bootstrap_failed",
                queue_name=self.queue.name,
                error=str(exc),
            )
            return False

        self.readiness.transition(ConnectionState.READY)
        return True
