"""ClickUp webhook receiver"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from tasksync.api.deps import get_services
from tasksync.models.sync_log import utcnow
from tasksync.schemas import WebhookEvent
from tasksync.security import verify_clickup_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clickup", tags=["clickup"])


def _ack(success: bool, message: str, event_type: Optional[str] = None) -> dict:
    return {
        "success": success,
        "message": message,
        "eventType": event_type,
        "timestamp": utcnow().isoformat() + "Z",
    }


@router.post("/webhook")
async def receive_webhook(request: Request, services=Depends(get_services)):
    """Acknowledge a ClickUp delivery and queue it for processing.

    Always answers 200 (ClickUp retries anything else), except for a bad
    signature when a webhook secret is configured.
    """
    body = await request.body()
    secret = services.settings.clickup_webhook_secret
    if not verify_clickup_signature(body, request.headers.get("X-Signature"), secret):
        logger.warning("Rejected webhook delivery with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        event = WebhookEvent.model_validate(json.loads(body))
    except ValueError as e:
        logger.warning(f"Malformed webhook payload: {e}")
        return _ack(False, "Malformed payload")

    if not event.task_id:
        logger.warning(f"Webhook event '{event.event}' without task_id")
        return _ack(False, "Missing task_id", event.event)

    if not await services.webhooks.submit(event):
        return _ack(False, "Event dropped", event.event)
    return _ack(True, "Event queued", event.event)


@router.get("/test")
def test_webhook():
    """Reachability check for the webhook route"""
    return {"message": "ClickUp webhook endpoint is working", "timestamp": utcnow().isoformat() + "Z"}


@router.post("/sync")
async def manual_sync(
    list_id: Optional[str] = Query(default=None, alias="listId"),
    services=Depends(get_services),
):
    """Fetch every task of a ClickUp list (the configured list by default)"""
    list_id = list_id or services.settings.clickup_list_id
    if not list_id:
        raise HTTPException(status_code=400, detail="listId is required")
    try:
        tasks = await services.clickup.get_list_tasks(list_id)
    except Exception as e:
        logger.error(f"Manual sync of list {list_id} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return {"success": True, "message": "Sync completed", "count": len(tasks), "data": tasks}
