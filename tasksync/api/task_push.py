"""Push-style sync keyed by ClickUp task id"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from tasksync.api.deps import get_services
from tasksync.models.sync_log import SyncDirection, SyncStatus
from tasksync.schemas import StatusPush, TaskPush
from tasksync.services.audit import SyncResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks-sync", tags=["tasks-sync"])


async def _finish(services, operation: str, result: SyncResult) -> SyncResult:
    await services.recorder.record(SyncDirection.INBOUND, operation, result)
    if result.status == SyncStatus.FAILED:
        raise HTTPException(status_code=502, detail=result.message)
    if result.status == SyncStatus.SKIPPED:
        raise HTTPException(status_code=404, detail="Task not found")
    return result


@router.post("/sync")
async def sync_task(push: TaskPush, services=Depends(get_services)):
    """Create or update the internal task for a ClickUp task"""
    result = await _finish(services, "push", await services.relay.push_task(push))
    return {
        "success": True,
        "message": result.message,
        "taskId": push.task_id,
        "internalTaskId": result.internal_task_id,
    }


@router.delete("/{clickup_task_id}")
async def delete_task(clickup_task_id: str, services=Depends(get_services)):
    """Delete the internal task linked to a ClickUp task"""
    result = await _finish(services, "push delete", await services.relay.push_delete(clickup_task_id))
    return {"success": True, "message": result.message, "clickupTaskId": clickup_task_id}


@router.patch("/{clickup_task_id}/status")
async def update_status(clickup_task_id: str, update: StatusPush, services=Depends(get_services)):
    """Set the status of the internal task linked to a ClickUp task"""
    result = await _finish(
        services, "push status", await services.relay.push_status(clickup_task_id, update.status)
    )
    return {"success": True, "message": result.message, "clickupTaskId": clickup_task_id}
