"""Telegram log relay"""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from tasksync.api.deps import get_services

router = APIRouter(prefix="/api/telegram", tags=["telegram"])


class TelegramLog(BaseModel):
    source: str = "App"
    action: str = ""
    message: str = ""


@router.post("/log")
async def send_log(entry: TelegramLog, services=Depends(get_services)):
    """Forward a log line to the configured Telegram chat"""
    if services.notifier is None:
        raise HTTPException(status_code=503, detail="Telegram notifications are not configured")
    sent = await services.notifier.send_message(
        f"*{entry.source} Log*\nAction: {entry.action}\n{entry.message}"
    )
    return {"success": sent}
