"""Bounded queue and worker pool for webhook processing"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from tasksync.models.sync_log import SyncDirection, SyncStatus
from tasksync.schemas import WebhookEvent
from tasksync.services.audit import SyncResult

logger = logging.getLogger(__name__)


class WebhookWorkerPool:
    """Runs webhook events through a handler on a fixed number of worker tasks.

    The HTTP layer calls `submit()` and returns immediately; results and
    failures are recorded through `recorder` instead of being lost.
    """

    def __init__(
        self,
        handler: Callable[[WebhookEvent], Awaitable[SyncResult]],
        recorder=None,
        *,
        workers: int = 4,
        queue_size: int = 1000,
    ):
        self.handler = handler
        self.recorder = recorder
        self.workers = max(1, workers)
        self.queue_size = queue_size
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: List[asyncio.Task] = []
        self._in_flight = 0
        self._processed = 0
        self._failed = 0
        self._dropped = 0

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"webhook-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info(f"Webhook worker pool started ({self.workers} workers, queue size {self.queue_size})")

    async def submit(self, event: WebhookEvent) -> bool:
        """Queue an event without waiting for a free slot. Returns False if it was dropped."""
        if self._queue is None:
            logger.error(f"Webhook worker pool not running; dropping {event.event} for task {event.task_id}")
            await self._drop(event, "Worker pool not running")
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Webhook queue full; dropping {event.event} for task {event.task_id}")
            await self._drop(event, "Queue full")
            return False
        return True

    async def _drop(self, event: WebhookEvent, reason: str) -> None:
        self._dropped += 1
        await self._record(
            event,
            SyncResult(SyncStatus.DROPPED, reason, external_task_id=event.task_id),
        )

    async def _record(self, event: WebhookEvent, result: SyncResult) -> None:
        if self.recorder is not None:
            await self.recorder.record(SyncDirection.INBOUND, event.event, result)

    async def _worker(self, index: int) -> None:
        while True:
            event = await self._queue.get()
            self._in_flight += 1
            try:
                result = await self._handle(index, event)
                self._processed += 1
                if result.status == SyncStatus.FAILED:
                    self._failed += 1
                await self._record(event, result)
            finally:
                self._in_flight -= 1
                self._queue.task_done()

    async def _handle(self, index: int, event: WebhookEvent) -> SyncResult:
        try:
            return await self.handler(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Worker {index} failed on {event.event} for task {event.task_id}: {e}")
            return SyncResult(SyncStatus.FAILED, str(e), external_task_id=event.task_id)

    async def join(self) -> None:
        """Wait until every queued event has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, timeout: float = 10.0) -> None:
        """Drain the queue for up to `timeout` seconds, then cancel the workers."""
        if not self.running:
            return
        try:
            await asyncio.wait_for(self.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Webhook queue not drained within {timeout}s; "
                f"abandoning {self._queue.qsize()} queued events"
            )

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._queue = None
        logger.info("Webhook worker pool stopped")

    def stats(self) -> Dict[str, int]:
        return {
            "workers": len(self._tasks),
            "queued": self._queue.qsize() if self._queue is not None else 0,
            "in_flight": self._in_flight,
            "processed": self._processed,
            "failed": self._failed,
            "dropped": self._dropped,
        }
