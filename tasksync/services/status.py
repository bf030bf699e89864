"""Status and progress translation between ClickUp and the internal backend"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

PENDING = "Pending"
IN_PROGRESS = "In Progress"
COMPLETED = "Completed"

# lowercased status -> (internal status, progress %)
# Internal spellings are listed too, so translating an already-internal
# status is the identity.
_INBOUND = {
    "to do": (PENDING, 0),
    "todo": (PENDING, 0),
    "pending": (PENDING, 0),
    "in progress": (IN_PROGRESS, 50),
    "review": (IN_PROGRESS, 75),
    "complete": (COMPLETED, 100),
    "completed": (COMPLETED, 100),
    "closed": (COMPLETED, 100),
    "done": (COMPLETED, 100),
}

_OUTBOUND = {
    "to do": "to do",
    "todo": "to do",
    "pending": "to do",
    "in progress": "in progress",
    "review": "review",
    "completed": "complete",
    "complete": "complete",
    "done": "complete",
    "closed": "complete",
}

DEFAULT_DEADLINE_DAYS = 7


def _key(status: Optional[str]) -> str:
    return " ".join((status or "").split()).lower()


def to_internal_status(status: Optional[str]) -> str:
    """ClickUp status name -> internal status (unknown -> Pending)."""
    return _INBOUND.get(_key(status), (PENDING, 0))[0]


def progress_for_status(status: Optional[str]) -> int:
    """Progress percentage implied by a ClickUp status name."""
    return _INBOUND.get(_key(status), (PENDING, 0))[1]


def to_external_status(status: Optional[str]) -> str:
    """Internal status -> ClickUp status name (unknown -> 'to do')."""
    return _OUTBOUND.get(_key(status), "to do")


def _format_iso(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_due_date(value: Any, *, now: Optional[datetime] = None) -> str:
    """ClickUp due_date (epoch milliseconds) -> ISO-8601 UTC string.

    Missing or unparseable values default to a week from now, since the
    backend requires a deadline.
    """
    now = now or datetime.now(timezone.utc)
    try:
        millis = int(str(value).strip())
    except (TypeError, ValueError):
        return _format_iso(now + timedelta(days=DEFAULT_DEADLINE_DAYS))
    return _format_iso(datetime.fromtimestamp(millis / 1000, tz=timezone.utc))


def to_due_date_millis(value: Optional[str]) -> Optional[int]:
    """ISO-8601 deadline -> ClickUp due_date (epoch milliseconds)."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)
