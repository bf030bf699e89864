"""Outbound sync: mirrors internal task writes to ClickUp"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from tasksync.models.sync_log import SyncDirection, SyncStatus
from tasksync.schemas import InternalTask, TaskInput
from tasksync.services.audit import SyncResult
from tasksync.services.kpi import KPI_CACHE_KEY
from tasksync.services.status import (
    progress_for_status,
    to_due_date_millis,
    to_external_status,
    to_internal_status,
)

logger = logging.getLogger(__name__)

TAGS_CACHE_KEY = "task_tags"


def _normalize_tags(tags: Iterable[str]) -> set:
    return {t.strip().lower() for t in tags or [] if t and t.strip()}


def diff_tags(current: Iterable[str], desired: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Return (to_add, to_remove); a tag never appears in both."""
    have = _normalize_tags(current)
    want = _normalize_tags(desired)
    return sorted(want - have), sorted(have - want)


def _clickup_user_id(external_id: str):
    """ClickUp expects numeric user ids in assignee lists."""
    return int(external_id) if str(external_id).isdigit() else external_id


class OutboundSync:
    """Internal task create/update/delete, each mirrored to the ClickUp twin"""

    def __init__(
        self,
        backend,
        clickup,
        mapper,
        lookup,
        cache,
        recorder=None,
        *,
        placeholder_prefix: str = "PENDING_",
        tag_fetch_concurrency: int = 15,
        tag_fetch_limit: int = 150,
        tags_ttl_seconds: float = 600,
    ):
        self.backend = backend
        self.clickup = clickup
        self.mapper = mapper
        self.lookup = lookup
        self.cache = cache
        self.recorder = recorder
        self.placeholder_prefix = placeholder_prefix
        self.tag_fetch_concurrency = tag_fetch_concurrency
        self.tag_fetch_limit = tag_fetch_limit
        self.tags_ttl_seconds = tags_ttl_seconds

    async def _record(self, operation: str, result: SyncResult) -> None:
        if self.recorder is not None:
            await self.recorder.record(SyncDirection.OUTBOUND, operation, result)

    def _invalidate(self, *keys: str) -> None:
        for key in keys:
            self.cache.invalidate(key)

    async def _external_assignee(self, internal_id: Optional[int]) -> Optional[str]:
        if internal_id is None:
            return None
        external_id = await self.mapper.resolve_reverse(internal_id)
        if external_id is None:
            logger.warning(f"Internal user {internal_id} has no ClickUp mapping; leaving task unassigned")
        return external_id

    @staticmethod
    def _backend_payload(data: TaskInput, *, creating: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if data.title is not None:
            payload["title"] = data.title
        if data.description is not None:
            payload["description"] = data.description
        if data.status is not None or creating:
            payload["status"] = to_internal_status(data.status)
        if data.progress_percentage is not None:
            payload["progress_percentage"] = data.progress_percentage
        elif "status" in payload:
            payload["progress_percentage"] = progress_for_status(payload["status"])
        for key in ("assignee_id", "assigner_id", "deadline"):
            value = getattr(data, key)
            if value is not None:
                payload[key] = value
        return payload

    @staticmethod
    def _clickup_fields(data: TaskInput) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if data.title is not None:
            body["name"] = data.title
        if data.description is not None:
            body["description"] = data.description
        if data.status is not None:
            body["status"] = to_external_status(data.status)
        due = to_due_date_millis(data.deadline)
        if due is not None:
            body["due_date"] = due
        return body

    # Create

    async def create_task(self, data: TaskInput) -> Dict[str, Any]:
        """Create the ClickUp twin, then the internal task pointing at it.

        If ClickUp is unavailable the internal task is still created, with a
        placeholder id. If the internal create fails, the twin is deleted again.
        """
        body = self._clickup_fields(data)
        body.setdefault("name", data.title or "Untitled task")
        body.setdefault("status", to_external_status(data.status))
        assignee = await self._external_assignee(data.assignee_id)
        if assignee is not None:
            body["assignees"] = [_clickup_user_id(assignee)]

        external_id = None
        try:
            created = await self.clickup.create_task(body)
            external_id = str(created.get("id")) if created.get("id") else None
        except Exception as e:
            logger.warning(f"ClickUp create failed, creating internal task unlinked: {e}")

        clickup_id = external_id or f"{self.placeholder_prefix}{uuid.uuid4().hex}"
        payload = self._backend_payload(data, creating=True)
        payload["clickup_id"] = clickup_id

        try:
            task = await self.backend.create_task(payload)
        except Exception as e:
            if external_id:
                await self._delete_twin(external_id)
            await self._record(
                "create",
                SyncResult(SyncStatus.FAILED, f"Internal create failed: {e}", external_task_id=external_id),
            )
            return {"status": "failed", "success": False, "error": str(e)}

        internal = InternalTask.from_backend(task)
        internal_id = internal.internal_id if internal else None

        tags = None
        if external_id and data.tags:
            tags = await self._sync_tags_after_write(external_id, data.tags)

        self._invalidate(KPI_CACHE_KEY)
        message = "Created and linked" if external_id else "Created with placeholder id"
        await self._record(
            "create",
            SyncResult(
                SyncStatus.SUCCESS, message, external_task_id=clickup_id, internal_task_id=internal_id
            ),
        )
        return {
            "status": "success",
            "success": True,
            "task": task,
            "clickup_id": clickup_id,
            "linked": external_id is not None,
            "tags": tags,
        }

    async def _delete_twin(self, external_id: str) -> None:
        try:
            await self.clickup.delete_task(external_id)
            logger.info(f"Rolled back ClickUp task {external_id}")
        except Exception as e:
            logger.warning(f"Could not roll back ClickUp task {external_id}: {e}")

    # Update

    async def update_task(self, internal_id: int, data: TaskInput) -> Dict[str, Any]:
        """Update the internal task; mirror to ClickUp only if it is linked."""
        try:
            existing = await self.lookup.by_internal_id(internal_id)
        except Exception as e:
            return {"status": "failed", "success": False, "error": str(e)}
        if existing is None:
            return {"status": "not_found", "success": False, "error": f"Task {internal_id} not found"}

        try:
            task = await self.backend.update_task(internal_id, self._backend_payload(data, creating=False))
        except Exception as e:
            await self._record(
                "update",
                SyncResult(SyncStatus.FAILED, str(e), existing.external_id, internal_id),
            )
            return {"status": "failed", "success": False, "error": str(e)}

        mirrored = False
        tags = None
        if existing.is_linked(self.placeholder_prefix):
            mirrored = await self._mirror_update(existing.external_id, data)
            if data.tags is not None:
                tags = await self._sync_tags_after_write(existing.external_id, data.tags)
        else:
            logger.info(f"Task {internal_id} is not linked to ClickUp; skipping mirror")

        self._invalidate(KPI_CACHE_KEY)
        await self._record(
            "update",
            SyncResult(
                SyncStatus.SUCCESS,
                "Updated and mirrored" if mirrored else "Updated (not mirrored)",
                existing.external_id,
                internal_id,
            ),
        )
        return {"status": "success", "success": True, "task": task, "mirrored": mirrored, "tags": tags}

    async def _mirror_update(self, external_id: str, data: TaskInput) -> bool:
        try:
            body = self._clickup_fields(data)
            if data.assignee_id is not None:
                assignee = await self._external_assignee(data.assignee_id)
                if assignee is not None:
                    body["assignees"] = await self._assignee_change(external_id, assignee)
            if body:
                await self.clickup.update_task(external_id, body)
            return True
        except Exception as e:
            logger.warning(f"Failed to mirror update to ClickUp task {external_id}: {e}")
            return False

    async def _assignee_change(self, external_id: str, assignee: str) -> Dict[str, List]:
        """ClickUp's update takes assignee additions and removals, not a full list."""
        task = await self.clickup.get_task_or_none(external_id) or {}
        current = [
            str(a.get("id")) for a in task.get("assignees") or [] if isinstance(a, dict) and a.get("id")
        ]
        return {
            "add": [] if assignee in current else [_clickup_user_id(assignee)],
            "rem": [_clickup_user_id(c) for c in current if c != assignee],
        }

    # Delete

    async def delete_task(self, internal_id: int) -> Dict[str, Any]:
        try:
            existing = await self.lookup.by_internal_id(internal_id)
        except Exception as e:
            return {"status": "failed", "success": False, "error": str(e)}
        if existing is None:
            return {"status": "not_found", "success": False, "error": f"Task {internal_id} not found"}

        try:
            await self.backend.delete_task(internal_id)
        except Exception as e:
            await self._record(
                "delete",
                SyncResult(SyncStatus.FAILED, str(e), existing.external_id, internal_id),
            )
            return {"status": "failed", "success": False, "error": str(e)}

        mirrored = False
        if existing.is_linked(self.placeholder_prefix):
            try:
                await self.clickup.delete_task(existing.external_id)
                mirrored = True
            except Exception as e:
                logger.warning(f"Failed to delete ClickUp task {existing.external_id}: {e}")

        self._invalidate(TAGS_CACHE_KEY, KPI_CACHE_KEY)
        await self._record(
            "delete",
            SyncResult(
                SyncStatus.SUCCESS,
                "Deleted and mirrored" if mirrored else "Deleted (not mirrored)",
                existing.external_id,
                internal_id,
            ),
        )
        return {"status": "success", "success": True, "mirrored": mirrored}

    # Tags

    async def sync_tags(self, external_id: str, desired: Iterable[str]) -> Dict[str, List[str]]:
        """Make the ClickUp task's tags equal `desired` with individual add/remove calls."""
        current = await self.clickup.get_task_tags(external_id)
        to_add, to_remove = diff_tags(current, desired)

        calls = [self.clickup.add_task_tag(external_id, tag) for tag in to_add]
        calls += [self.clickup.remove_task_tag(external_id, tag) for tag in to_remove]
        results = await asyncio.gather(*calls, return_exceptions=True)
        failed = [
            tag for tag, result in zip(to_add + to_remove, results) if isinstance(result, Exception)
        ]

        if to_add or to_remove:
            self._invalidate(TAGS_CACHE_KEY, KPI_CACHE_KEY)
        logger.info(
            f"Tags for ClickUp task {external_id}: +{len(to_add)} -{len(to_remove)}, {len(failed)} failed"
        )
        return {"added": to_add, "removed": to_remove, "failed": failed}

    async def _sync_tags_after_write(self, external_id: str, desired: Iterable[str]) -> Dict[str, Any]:
        """sync_tags for a task whose internal write already succeeded; failures are reported, not raised."""
        try:
            return await self.sync_tags(external_id, desired)
        except Exception as e:
            logger.warning(f"Failed to sync tags for ClickUp task {external_id}: {e}")
            return {"error": str(e)}

    async def fetch_task_tags(self, tasks: Optional[List[InternalTask]] = None) -> Dict[str, List[str]]:
        """ClickUp tags of every linked task, keyed by ClickUp task id (cached)."""

        async def _build() -> Dict[str, List[str]]:
            source = tasks if tasks is not None else await self.lookup.all_tasks()
            ids: List[str] = []
            for task in source:
                if task.is_linked(self.placeholder_prefix) and task.external_id not in ids:
                    ids.append(task.external_id)
            if len(ids) > self.tag_fetch_limit:
                logger.warning(f"Fetching tags for the first {self.tag_fetch_limit} of {len(ids)} linked tasks")
                ids = ids[: self.tag_fetch_limit]

            semaphore = asyncio.Semaphore(self.tag_fetch_concurrency)

            async def _one(external_id: str) -> Tuple[str, List[str]]:
                async with semaphore:
                    try:
                        return external_id, await self.clickup.get_task_tags(external_id)
                    except Exception as e:
                        logger.warning(f"Failed to fetch tags for ClickUp task {external_id}: {e}")
                        return external_id, []

            results = await asyncio.gather(*(_one(i) for i in ids))
            tag_map = {external_id: tags for external_id, tags in results if tags}
            logger.info(f"Fetched tags for {len(ids)} ClickUp tasks ({len(tag_map)} tagged)")
            return tag_map

        return await self.cache.get_or_build(TAGS_CACHE_KEY, self.tags_ttl_seconds, _build)
