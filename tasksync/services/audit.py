"""Persistent audit trail of sync operations"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from tasksync.models import SyncLog
from tasksync.models.sync_log import SyncDirection, SyncStatus, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    """Outcome of handling one webhook event or outbound operation."""

    status: SyncStatus
    message: str = ""
    external_task_id: Optional[str] = None
    internal_task_id: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status in (SyncStatus.SUCCESS, SyncStatus.SKIPPED)


class SyncRecorder:
    """Writes SyncLog rows; never lets a logging failure break a sync."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    async def record(
        self,
        direction: SyncDirection,
        event_type: Optional[str],
        result: SyncResult,
    ) -> None:
        """Write one row on a worker thread so the event loop is not blocked."""
        await asyncio.to_thread(self.write, direction, event_type, result)

    def write(
        self,
        direction: SyncDirection,
        event_type: Optional[str],
        result: SyncResult,
    ) -> None:
        db = self.session_factory()
        try:
            db.add(
                SyncLog(
                    direction=direction,
                    event_type=event_type,
                    status=result.status,
                    message=result.message,
                    external_task_id=result.external_task_id,
                    internal_task_id=result.internal_task_id,
                )
            )
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to persist sync log ({event_type}): {e}")
        finally:
            db.close()

    def prune(self, retention_days: int, *, now: Optional[datetime] = None) -> int:
        """Delete SyncLog rows older than `retention_days`. Returns rows removed."""
        cutoff = (now or utcnow()) - timedelta(days=retention_days)
        db = self.session_factory()
        try:
            removed = (
                db.query(SyncLog)
                .filter(SyncLog.created_at < cutoff)
                .delete(synchronize_session=False)
            )
            db.commit()
            logger.info(f"Pruned {removed} sync log rows older than {retention_days} days")
            return removed
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to prune sync logs: {e}")
            return 0
        finally:
            db.close()
