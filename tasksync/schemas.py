"""Domain records exchanged with ClickUp and the internal backend.

Both upstream APIs speak loosely-typed JSON (ids may arrive as numbers or
strings, optional fields may be missing or null). These models normalize
that once at the edge so the services can rely on consistent types.
"""

import enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into a UTC tz-naive datetime."""
    text = _as_str(value)
    if not text:
        return None
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


class ExternalUser(BaseModel):
    """A ClickUp team member."""

    external_id: str
    email: Optional[str] = None
    username: Optional[str] = None
    display_name: Optional[str] = None

    @classmethod
    def from_clickup(cls, data: Dict[str, Any]) -> Optional["ExternalUser"]:
        external_id = _as_str((data or {}).get("id"))
        if not external_id:
            return None
        username = _as_str(data.get("username"))
        return cls(
            external_id=external_id,
            email=_as_str(data.get("email")),
            username=username,
            display_name=_as_str(data.get("display_name")) or username,
        )


class InternalUser(BaseModel):
    """A member record of the internal backend."""

    internal_id: int
    email: Optional[str] = None
    name: Optional[str] = None
    username: Optional[str] = None
    # Explicit backlink to the ClickUp user id, when the backend stores one
    external_id: Optional[str] = None

    @classmethod
    def from_backend(cls, data: Dict[str, Any]) -> Optional["InternalUser"]:
        internal_id = _as_int((data or {}).get("id"))
        if internal_id is None:
            return None
        return cls(
            internal_id=internal_id,
            email=_as_str(data.get("email")),
            name=_as_str(data.get("name")),
            username=_as_str(data.get("username")),
            external_id=_as_str(data.get("clickup_id")) or _as_str(data.get("external_id")),
        )


class InternalTask(BaseModel):
    """A task record of the internal backend."""

    internal_id: int
    external_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    progress_percentage: Optional[int] = None
    assignee_id: Optional[int] = None
    assigner_id: Optional[int] = None
    deadline: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_backend(cls, data: Dict[str, Any]) -> Optional["InternalTask"]:
        data = data or {}
        internal_id = _as_int(data.get("task_id"))
        if internal_id is None:
            internal_id = _as_int(data.get("id"))
        if internal_id is None:
            return None
        return cls(
            internal_id=internal_id,
            external_id=_as_str(data.get("clickup_id")),
            title=_as_str(data.get("title")),
            description=data.get("description"),
            status=_as_str(data.get("status")),
            progress_percentage=_as_int(data.get("progress_percentage")),
            assignee_id=_as_int(data.get("assignee_id")),
            assigner_id=_as_int(data.get("assigner_id")),
            deadline=_as_str(data.get("deadline")),
            created_at=parse_timestamp(data.get("created_at")),
        )

    def is_placeholder(self, prefix: str) -> bool:
        return bool(self.external_id) and self.external_id.startswith(prefix)

    def is_linked(self, prefix: str) -> bool:
        """True when the task points at a real ClickUp twin."""
        return bool(self.external_id) and not self.is_placeholder(prefix)


class WebhookEventType(str, enum.Enum):
    """ClickUp webhook event names we act on."""

    CREATED = "taskCreated"
    UPDATED = "taskUpdated"
    DELETED = "taskDeleted"
    STATUS_CHANGED = "taskStatusUpdated"
    ASSIGNEE_CHANGED = "taskAssigneeUpdated"
    TAGS_CHANGED = "taskTagUpdated"


class WebhookEvent(BaseModel):
    """A ClickUp webhook delivery."""

    event: str
    task_id: Optional[str] = None
    webhook_id: Optional[str] = None
    history_items: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("task_id", "webhook_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Optional[str]:
        return _as_str(value)

    @field_validator("history_items", mode="before")
    @classmethod
    def _coerce_history(cls, value: Any) -> List[Dict[str, Any]]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @property
    def event_type(self) -> Optional[WebhookEventType]:
        try:
            return WebhookEventType(self.event)
        except ValueError:
            return None


class TaskInput(BaseModel):
    """Task fields accepted by the outbound create/update endpoints."""

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    progress_percentage: Optional[int] = Field(default=None, ge=0, le=100)
    assignee_id: Optional[int] = None
    assigner_id: Optional[int] = None
    deadline: Optional[str] = None
    # Desired ClickUp tags; None leaves tags untouched
    tags: Optional[List[str]] = None


class TaskPush(BaseModel):
    """A ClickUp task pushed directly by an automation rather than a webhook.

    Field names follow the pushing side (``taskId``, ``dueDate``); the
    snake_case names are accepted too.
    """

    task_id: str = Field(alias="taskId", min_length=1)
    name: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[str] = Field(default=None, alias="dueDate")
    url: Optional[str] = None
    assignees: List[str] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    @field_validator("task_id", "due_date", "priority", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _as_str(value)

    @field_validator("assignees", mode="before")
    @classmethod
    def _coerce_assignees(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [text for text in (_as_str(v) for v in value) if text]


class StatusPush(BaseModel):
    status: str = Field(min_length=1)
