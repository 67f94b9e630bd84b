import asyncio
import logging
from typing import Optional

from models.entities import UserActivityChanged


class EventChannel:
    """Bounded mailbox between the request path and the rebalancing worker.

    Publishing never waits: when the queue is full the event is dropped
    and a warning is logged. Delivery is at most once.
    """

    def __init__(self, maxsize: int = 100, logger: Optional[logging.Logger] = None):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.logger = logger or logging.getLogger(__name__)
        self.dropped = 0

    def publish(self, event: UserActivityChanged) -> bool:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            self.logger.warning(
                "Failed to publish user status change event: channel is full (user_id=%s, is_active=%s)",
                event.user_id,
                event.is_active,
            )
            return False
        return True

    async def get(self) -> UserActivityChanged:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every published event has been handled."""
        await self._queue.join()

    def qsize(self) -> int:
        return self._queue.qsize()
