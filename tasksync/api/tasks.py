"""Task endpoints (internal writes mirrored to ClickUp)"""
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from tasksync.api.deps import get_services
from tasksync.schemas import TaskInput

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


class TagsUpdate(BaseModel):
    tags: List[str]


def _raise_for_result(result: Dict[str, Any]) -> Dict[str, Any]:
    if result.get("status") == "not_found":
        raise HTTPException(status_code=404, detail=result.get("error") or "Task not found")
    if not result.get("success"):
        raise HTTPException(status_code=502, detail=result.get("error") or "Sync failed")
    return result


@router.get("/tags")
async def list_task_tags(services=Depends(get_services)):
    """ClickUp tags of linked tasks, keyed by ClickUp task id"""
    try:
        return await services.outbound.fetch_task_tags()
    except Exception as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/", status_code=201)
async def create_task(data: TaskInput, services=Depends(get_services)):
    """Create a task in the backend and in ClickUp"""
    if not data.title:
        raise HTTPException(status_code=400, detail="title is required")
    return _raise_for_result(await services.outbound.create_task(data))


@router.put("/{task_id}")
async def update_task(task_id: int, data: TaskInput, services=Depends(get_services)):
    """Update a task and mirror the change to its ClickUp twin"""
    return _raise_for_result(await services.outbound.update_task(task_id, data))


@router.delete("/{task_id}")
async def delete_task(task_id: int, services=Depends(get_services)):
    """Delete a task and its ClickUp twin"""
    return _raise_for_result(await services.outbound.delete_task(task_id))


@router.put("/{task_id}/tags")
async def set_task_tags(task_id: int, update: TagsUpdate, services=Depends(get_services)):
    """Replace the ClickUp tags of a task"""
    try:
        task = await services.lookup.by_internal_id(task_id)
    except Exception as e:
        raise HTTPException(status_code=502, detail=str(e))
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    if not task.is_linked(services.settings.placeholder_prefix):
        raise HTTPException(status_code=409, detail="Task is not linked to ClickUp")

    try:
        return await services.outbound.sync_tags(task.external_id, update.tags)
    except Exception as e:
        raise HTTPException(status_code=502, detail=str(e))
