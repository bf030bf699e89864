"""Inbound sync: applies ClickUp webhook events to the internal backend"""

import logging
from typing import Any, Dict, Optional

from tasksync.models.sync_log import SyncStatus
from tasksync.schemas import InternalTask, TaskPush, WebhookEvent, WebhookEventType
from tasksync.services.audit import SyncResult
from tasksync.services.kpi import KPI_CACHE_KEY
from tasksync.services.outbound import TAGS_CACHE_KEY
from tasksync.services.status import parse_due_date, progress_for_status, to_internal_status

logger = logging.getLogger(__name__)


class SyncRelay:
    """Translate one ClickUp webhook event into internal backend calls.

    Tasks originate in the internal backend. A ``taskCreated`` event never
    creates an internal row: it is either already linked, links a recent
    placeholder, or is skipped. Only an explicit push (`push_task`) may
    create one.
    """

    def __init__(
        self,
        backend,
        clickup,
        mapper,
        lookup,
        cache=None,
        *,
        default_assignee_id: Optional[int] = None,
        lookup_attempts: int = 3,
        lookup_delay_seconds: float = 0.5,
    ):
        self.backend = backend
        self.clickup = clickup
        self.mapper = mapper
        self.lookup = lookup
        self.cache = cache
        self.default_assignee_id = default_assignee_id
        self.lookup_attempts = lookup_attempts
        self.lookup_delay_seconds = lookup_delay_seconds

        self._handlers = {
            WebhookEventType.CREATED: self._handle_created,
            WebhookEventType.UPDATED: self._handle_updated,
            WebhookEventType.ASSIGNEE_CHANGED: self._handle_updated,
            WebhookEventType.DELETED: self._handle_deleted,
            WebhookEventType.STATUS_CHANGED: self._handle_status_changed,
            WebhookEventType.TAGS_CHANGED: self._handle_tags_changed,
        }

    async def handle_event(self, event: WebhookEvent) -> SyncResult:
        """Apply an event. Never raises; failures come back as a FAILED result."""
        event_type = event.event_type
        if event_type is None:
            logger.info(f"Ignoring unhandled webhook event '{event.event}'")
            return SyncResult(SyncStatus.SKIPPED, f"Unhandled event type '{event.event}'")
        if not event.task_id:
            logger.warning(f"Webhook event '{event.event}' has no task_id")
            return SyncResult(SyncStatus.SKIPPED, "Missing task_id")

        return await self._apply(event.event, event.task_id, self._handlers[event_type], event)

    async def _apply(self, label: str, external_id: str, handler, *args) -> SyncResult:
        logger.info(f"Processing {label} for ClickUp task {external_id}")
        try:
            result = await handler(*args)
        except Exception as e:
            logger.error(f"Failed to process {label} for ClickUp task {external_id}: {e}")
            return SyncResult(SyncStatus.FAILED, str(e), external_task_id=external_id)

        if result.status == SyncStatus.SUCCESS and self.cache is not None:
            self.cache.invalidate(KPI_CACHE_KEY)
        logger.info(f"{label} for ClickUp task {external_id}: {result.status.value} {result.message}")
        return result

    # Direct pushes, keyed by ClickUp task id

    async def push_task(self, push: TaskPush) -> SyncResult:
        """Create or update the internal task for a pushed ClickUp task."""
        return await self._apply("push", push.task_id, self._push_task, push)

    async def push_delete(self, external_id: str) -> SyncResult:
        event = WebhookEvent(event=WebhookEventType.DELETED.value, task_id=external_id)
        return await self._apply("push delete", external_id, self._handle_deleted, event)

    async def push_status(self, external_id: str, status: str) -> SyncResult:
        event = WebhookEvent(
            event=WebhookEventType.STATUS_CHANGED.value,
            task_id=external_id,
            history_items=[{"field": "status", "after": {"status": status}}],
        )
        return await self._apply("push status", external_id, self._handle_status_changed, event)

    async def _push_task(self, push: TaskPush) -> SyncResult:
        payload = {
            "title": push.name or "",
            "description": (
                f"Synced from ClickUp\n"
                f"Status: {push.status or ''}\n"
                f"Priority: {push.priority or ''}\n"
                f"Assignees: {', '.join(push.assignees)}"
            ),
            "deadline": parse_due_date(push.due_date),
        }
        payload.update(self._status_payload(push.status))
        assignee_id = await self._map_assignee({"assignees": push.assignees})
        if assignee_id is not None:
            payload["assignee_id"] = assignee_id

        existing = await self.lookup.by_external_id(push.task_id)
        if existing is not None:
            await self.backend.update_task(existing.internal_id, payload)
            return SyncResult(
                SyncStatus.SUCCESS,
                "Updated internal task",
                external_task_id=push.task_id,
                internal_task_id=existing.internal_id,
            )

        payload["clickup_id"] = push.task_id
        created = InternalTask.from_backend(await self.backend.create_task(payload))
        return SyncResult(
            SyncStatus.SUCCESS,
            "Created internal task",
            external_task_id=push.task_id,
            internal_task_id=created.internal_id if created else None,
        )

    # Event handlers

    async def _handle_created(self, event: WebhookEvent) -> SyncResult:
        existing = await self.lookup.by_external_id_with_retry(
            event.task_id,
            attempts=self.lookup_attempts,
            delay_seconds=self.lookup_delay_seconds,
        )
        if existing is not None:
            return SyncResult(
                SyncStatus.SKIPPED,
                f"Already linked to internal task {existing.internal_id}",
                external_task_id=event.task_id,
                internal_task_id=existing.internal_id,
            )

        placeholders = await self.lookup.recent_placeholders()
        if not placeholders:
            return SyncResult(
                SyncStatus.SKIPPED,
                "Tasks created in ClickUp are not imported",
                external_task_id=event.task_id,
            )

        task = await self.clickup.get_task_or_none(event.task_id)
        if task is None:
            return SyncResult(
                SyncStatus.FAILED, "ClickUp task not found", external_task_id=event.task_id
            )

        name = (task.get("name") or "").strip()
        same_title = [p for p in placeholders if (p.title or "").strip() == name]
        if same_title:
            target = same_title[0]
        elif len(placeholders) == 1:
            target = placeholders[0]
        else:
            return SyncResult(
                SyncStatus.SKIPPED,
                f"{len(placeholders)} recent placeholder tasks, none titled '{name}'",
                external_task_id=event.task_id,
            )

        payload = self._status_payload(self._status_name(task))
        payload["clickup_id"] = event.task_id
        assignee_id = await self._map_assignee(task)
        if assignee_id is not None:
            payload["assignee_id"] = assignee_id

        await self.backend.update_task(target.internal_id, payload)
        return SyncResult(
            SyncStatus.SUCCESS,
            f"Linked placeholder task {target.internal_id}",
            external_task_id=event.task_id,
            internal_task_id=target.internal_id,
        )

    async def _handle_updated(self, event: WebhookEvent) -> SyncResult:
        existing = await self.lookup.by_external_id(event.task_id)
        if existing is None:
            return SyncResult(
                SyncStatus.SKIPPED, "No linked internal task", external_task_id=event.task_id
            )

        task = await self.clickup.get_task_or_none(event.task_id)
        if task is None:
            return SyncResult(
                SyncStatus.FAILED,
                "ClickUp task not found",
                external_task_id=event.task_id,
                internal_task_id=existing.internal_id,
            )

        await self.backend.update_task(existing.internal_id, await self._task_payload(task))
        return SyncResult(
            SyncStatus.SUCCESS,
            "Updated internal task",
            external_task_id=event.task_id,
            internal_task_id=existing.internal_id,
        )

    async def _handle_deleted(self, event: WebhookEvent) -> SyncResult:
        existing = await self.lookup.by_external_id(event.task_id)
        if existing is None:
            return SyncResult(
                SyncStatus.SKIPPED, "No linked internal task", external_task_id=event.task_id
            )

        await self.backend.delete_task(existing.internal_id)
        return SyncResult(
            SyncStatus.SUCCESS,
            "Deleted internal task",
            external_task_id=event.task_id,
            internal_task_id=existing.internal_id,
        )

    async def _handle_status_changed(self, event: WebhookEvent) -> SyncResult:
        existing = await self.lookup.by_external_id(event.task_id)
        if existing is None:
            return SyncResult(
                SyncStatus.SKIPPED, "No linked internal task", external_task_id=event.task_id
            )

        status = self.status_from_history(event)
        if status is None:
            task = await self.clickup.get_task_or_none(event.task_id)
            status = self._status_name(task) if task else None
        if status is None:
            return SyncResult(
                SyncStatus.FAILED,
                "Could not determine new status",
                external_task_id=event.task_id,
                internal_task_id=existing.internal_id,
            )

        payload = self._status_payload(status)
        await self.backend.update_task(existing.internal_id, payload)
        return SyncResult(
            SyncStatus.SUCCESS,
            f"Status set to {payload['status']}",
            external_task_id=event.task_id,
            internal_task_id=existing.internal_id,
        )

    async def _handle_tags_changed(self, event: WebhookEvent) -> SyncResult:
        if self.cache is not None:
            self.cache.invalidate(TAGS_CACHE_KEY)
        return SyncResult(
            SyncStatus.SUCCESS, "Tag caches invalidated", external_task_id=event.task_id
        )

    # Helpers

    @staticmethod
    def status_from_history(event: WebhookEvent) -> Optional[str]:
        """New status carried by the most recent status history item, if any."""
        for item in reversed(event.history_items):
            field = item.get("field")
            if field and field != "status":
                continue
            after = item.get("after")
            if isinstance(after, dict):
                after = after.get("status")
            if isinstance(after, str) and after.strip():
                return after.strip()
        return None

    @staticmethod
    def _status_name(task: Dict[str, Any]) -> Optional[str]:
        status = (task or {}).get("status")
        if isinstance(status, dict):
            status = status.get("status")
        return status if isinstance(status, str) and status else None

    @staticmethod
    def _status_payload(status: Optional[str]) -> Dict[str, Any]:
        return {
            "status": to_internal_status(status),
            "progress_percentage": progress_for_status(status),
        }

    async def _map_assignee(self, task: Dict[str, Any]) -> Optional[int]:
        """Internal id of the task's first ClickUp assignee (or the configured default)."""
        assignees = (task or {}).get("assignees") or []
        first = assignees[0] if assignees else None
        external_id = first.get("id") if isinstance(first, dict) else first
        internal_id = await self.mapper.resolve(external_id) if external_id is not None else None
        if internal_id is None:
            return self.default_assignee_id
        return internal_id

    async def _task_payload(self, task: Dict[str, Any]) -> Dict[str, Any]:
        status = self._status_name(task)
        payload = {
            "title": task.get("name") or "",
            "description": task.get("description")
            or task.get("text_content")
            or f"Synced from ClickUp - Status: {status or 'unknown'}",
            "deadline": parse_due_date(task.get("due_date")),
        }
        payload.update(self._status_payload(status))
        assignee_id = await self._map_assignee(task)
        if assignee_id is not None:
            payload["assignee_id"] = assignee_id
        return payload
