"""Dashboard and statistics endpoints"""

from datetime import timedelta

from fastapi import APIRouter, Depends
from sqlalchemy import desc
from sqlalchemy.orm import Session

from tasksync.api.deps import get_services
from tasksync.models import SyncLog
from tasksync.models.base import get_db
from tasksync.models.sync_log import SyncDirection, SyncStatus, utcnow

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/stats")
def get_dashboard_stats(db: Session = Depends(get_db), services=Depends(get_services)):
    """Get dashboard statistics"""
    total_logs = db.query(SyncLog).count()

    # Recent sync activity (last 24 hours)
    last_24h = utcnow() - timedelta(hours=24)
    recent = db.query(SyncLog).filter(SyncLog.created_at >= last_24h)
    recent_by_status = {
        status.value: recent.filter(SyncLog.status == status).count() for status in SyncStatus
    }
    recent_by_direction = {
        direction.value: recent.filter(SyncLog.direction == direction).count()
        for direction in SyncDirection
    }

    last_failure = (
        db.query(SyncLog)
        .filter(SyncLog.status == SyncStatus.FAILED)
        .order_by(desc(SyncLog.created_at))
        .first()
    )

    return {
        "total_syncs": total_logs,
        "recent_syncs": recent.count(),
        "recent_by_status": recent_by_status,
        "recent_by_direction": recent_by_direction,
        "last_failure": {
            "event_type": last_failure.event_type,
            "external_task_id": last_failure.external_task_id,
            "message": last_failure.message,
            "created_at": last_failure.created_at,
        }
        if last_failure
        else None,
        "webhook_queue": services.webhooks.stats(),
        "cached": services.cache.keys(),
    }


@router.get("/activity")
def get_recent_activity(limit: int = 50, db: Session = Depends(get_db)):
    """Get recent sync activity"""
    logs = db.query(SyncLog).order_by(desc(SyncLog.created_at)).limit(limit).all()

    activity = []
    for log in logs:
        activity.append(
            {
                "id": log.id,
                "direction": log.direction,
                "event_type": log.event_type,
                "status": log.status,
                "message": log.message,
                "external_task_id": log.external_task_id,
                "internal_task_id": log.internal_task_id,
                "created_at": log.created_at,
            }
        )

    return activity
