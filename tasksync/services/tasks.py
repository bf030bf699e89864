"""Lookup of internal backend tasks by id, ClickUp id, or placeholder"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_incrementing

from tasksync.models.sync_log import utcnow
from tasksync.schemas import InternalTask

logger = logging.getLogger(__name__)


class TaskLookup:
    """Finds internal tasks; upstream failures propagate to the caller."""

    def __init__(
        self,
        backend,
        *,
        placeholder_prefix: str = "PENDING_",
        placeholder_max_age_seconds: float = 30,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.backend = backend
        self.placeholder_prefix = placeholder_prefix
        self.placeholder_max_age_seconds = placeholder_max_age_seconds
        self._clock = clock
        self._sleep = sleep

    async def all_tasks(self) -> List[InternalTask]:
        raw = await self.backend.list_tasks()
        return [t for t in (InternalTask.from_backend(r) for r in raw) if t]

    async def by_external_id(self, external_id: str) -> Optional[InternalTask]:
        """Internal task linked to the given ClickUp task id, or None."""
        if not external_id:
            return None

        raw = await self.backend.list_tasks({"clickup_id": external_id})
        tasks = [t for t in (InternalTask.from_backend(r) for r in raw) if t]
        for task in tasks:
            if task.external_id == external_id:
                return task
        if tasks:
            # Filter was ignored and we already have the full listing.
            return None

        for task in await self.all_tasks():
            if task.external_id == external_id:
                return task
        return None

    async def by_external_id_with_retry(
        self,
        external_id: str,
        *,
        attempts: int = 3,
        delay_seconds: float = 0.5,
    ) -> Optional[InternalTask]:
        """Like by_external_id, but waits for a twin that may still be being written.

        Backoff is linear: delay, 2*delay, ... between attempts. Lookup errors
        are not retried and propagate.
        """

        def _log_retry(state):
            logger.debug(
                f"No internal task for ClickUp task {external_id} yet "
                f"(attempt {state.attempt_number}/{attempts}), retrying"
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_incrementing(start=delay_seconds, increment=delay_seconds),
            retry=retry_if_result(lambda task: task is None),
            before_sleep=_log_retry,
            retry_error_callback=lambda state: None,
            sleep=self._sleep,
        )
        return await retrying(self.by_external_id, external_id)

    async def by_internal_id(self, internal_id: int) -> Optional[InternalTask]:
        for task in await self.all_tasks():
            if task.internal_id == int(internal_id):
                return task
        return None

    async def recent_placeholders(self) -> List[InternalTask]:
        """Unlinked tasks created within the placeholder window, newest first."""
        now = self._clock()
        recent = []
        for task in await self.all_tasks():
            if not task.is_placeholder(self.placeholder_prefix) or task.created_at is None:
                continue
            age = (now - task.created_at).total_seconds()
            if age < self.placeholder_max_age_seconds:
                recent.append(task)
        recent.sort(key=lambda t: t.created_at, reverse=True)
        return recent
