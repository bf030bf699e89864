"""Sync log and webhook queue endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from pydantic import BaseModel
from datetime import datetime

from tasksync.api.deps import get_services
from tasksync.models.base import get_db
from tasksync.models import SyncLog
from tasksync.models.sync_log import SyncDirection, SyncStatus

router = APIRouter(prefix="/api/sync", tags=["sync"])


class SyncLogResponse(BaseModel):
    id: int
    direction: str
    event_type: Optional[str] = None
    external_task_id: Optional[str] = None
    internal_task_id: Optional[int] = None
    status: str
    message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("/logs", response_model=List[SyncLogResponse])
def list_sync_logs(
    limit: int = 100,
    status: Optional[SyncStatus] = None,
    direction: Optional[SyncDirection] = None,
    external_task_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """List sync logs, newest first"""
    query = db.query(SyncLog).order_by(SyncLog.created_at.desc(), SyncLog.id.desc())
    if status:
        query = query.filter(SyncLog.status == status)
    if direction:
        query = query.filter(SyncLog.direction == direction)
    if external_task_id:
        query = query.filter(SyncLog.external_task_id == external_task_id)
    logs = query.limit(limit).all()
    return logs


@router.get("/queue")
def webhook_queue_stats(services=Depends(get_services)):
    """Webhook worker pool counters"""
    return services.webhooks.stats()
