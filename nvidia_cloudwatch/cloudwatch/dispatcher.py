"""Flush dispatcher - runs sink pushes as detached tasks.

Flushes are fire-and-forget from the aggregator's point of view. The number of
transport calls in flight is capped; failures are logged and published on an
error queue for the supervisor to decide on.
"""

import asyncio
import logging
from typing import Optional, Set

from .sink import CloudWatchSink
from .window import FlushBatch

logger = logging.getLogger("nvidia_cloudwatch.cloudwatch.dispatcher")


class FlushDispatcher:
    def __init__(self, sink: CloudWatchSink, max_in_flight: int = 4,
                 errors: Optional[asyncio.Queue] = None):
        self.sink = sink
        self.max_in_flight = max_in_flight
        self.errors = errors if errors is not None else asyncio.Queue()
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._tasks: Set[asyncio.Task] = set()
        self.completed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, batch: FlushBatch) -> asyncio.Task:
        """Spawn a flush task for the batch; must be called from the event loop"""
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_in_flight)
        if len(self._tasks) >= self.max_in_flight:
            logger.warning(f"{len(self._tasks)} flushes still pending; new flush will wait")

        task = asyncio.create_task(self._flush(batch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _flush(self, batch: FlushBatch) -> None:
        async with self._semaphore:
            loop = asyncio.get_running_loop()
            try:
                sent = await loop.run_in_executor(None, self.sink.send, batch)
            except Exception as e:
                self.failed += 1
                logger.error(f"flush of {len(batch)} requests failed: {e}")
                await self.errors.put(e)
                return

        self.completed += 1
        logger.info(f"flushed {sent} metric data to CloudWatch")

    async def drain(self) -> None:
        """Wait for every outstanding flush task"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
