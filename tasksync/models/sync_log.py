"""Sync log model"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Enum
from datetime import datetime, timezone
import enum
from tasksync.models.base import Base


def utcnow() -> datetime:
    """UTC 'now' as tz-naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SyncStatus(str, enum.Enum):
    """Sync status enumeration"""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    DROPPED = "dropped"


class SyncDirection(str, enum.Enum):
    """Sync direction enumeration"""
    INBOUND = "inbound"    # ClickUp -> internal backend
    OUTBOUND = "outbound"  # internal backend -> ClickUp


class SyncLog(Base):
    """Log of sync operations"""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)

    direction = Column(Enum(SyncDirection), nullable=False)
    # Webhook event name for inbound rows, operation name for outbound rows
    event_type = Column(String, nullable=True)

    # Task information
    external_task_id = Column(String, nullable=True, index=True)
    internal_task_id = Column(Integer, nullable=True)

    # Sync details
    status = Column(Enum(SyncStatus), nullable=False)
    message = Column(Text, nullable=True)

    # Timestamp
    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self):
        return f"<SyncLog(status={self.status}, direction={self.direction}, event={self.event_type})>"
