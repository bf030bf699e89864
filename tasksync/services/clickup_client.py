"""ClickUp API client wrapper"""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)


class ClickUpClient:
    """Wrapper for ClickUp API operations"""

    def __init__(
        self,
        base_url: str,
        api_token: str,
        *,
        team_id: str = "",
        list_id: str = "",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize ClickUp client"""
        self.base_url = base_url
        self.team_id = team_id
        self.list_id = list_id
        self.http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            # ClickUp personal tokens go in the Authorization header without a scheme.
            headers={"Authorization": api_token, "User-Agent": "tasksync"},
            transport=transport,
        )

    async def aclose(self):
        await self.http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        response = await self.http.request(method, path, json=json, params=params)
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    @staticmethod
    def _status_code(exc: Exception) -> Optional[int]:
        if isinstance(exc, httpx.HTTPStatusError):
            return exc.response.status_code
        return None

    async def get_team_members(self) -> List[Dict[str, Any]]:
        """Get the user objects of every member of the configured team"""
        try:
            data = await self._request("GET", f"team/{self.team_id}")
            members = ((data or {}).get("team") or {}).get("members") or []
            users = [m.get("user") for m in members if isinstance(m, dict) and m.get("user")]
            logger.info(f"Fetched {len(users)} ClickUp users from team {self.team_id}")
            return users
        except Exception as e:
            logger.error(f"Failed to get ClickUp team {self.team_id}: {e}")
            raise

    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Get a single ClickUp user, returning None if it does not exist."""
        try:
            data = await self._request("GET", f"user/{user_id}")
            return (data or {}).get("user")
        except httpx.HTTPStatusError as e:
            if self._status_code(e) == 404:
                return None
            logger.error(f"Failed to get ClickUp user {user_id}: {e}")
            raise

    async def get_task(self, task_id: str) -> Dict[str, Any]:
        """Get a specific task"""
        try:
            return await self._request("GET", f"task/{task_id}")
        except Exception as e:
            logger.error(f"Failed to get ClickUp task {task_id}: {e}")
            raise

    async def get_list_tasks(
        self, list_id: Optional[str] = None, *, include_closed: bool = False
    ) -> List[Dict[str, Any]]:
        """Get every task in a list (the configured one by default), following pages"""
        list_id = list_id or self.list_id
        tasks: List[Dict[str, Any]] = []
        page = 0
        try:
            while True:
                data = await self._request(
                    "GET",
                    f"list/{list_id}/task",
                    params={"page": page, "include_closed": str(include_closed).lower()},
                )
                batch = (data or {}).get("tasks") or []
                tasks.extend(batch)
                # ClickUp pages hold at most 100 tasks.
                if not batch or (data or {}).get("last_page") or len(batch) < 100:
                    break
                page += 1
        except Exception as e:
            logger.error(f"Failed to list ClickUp tasks in list {list_id}: {e}")
            raise
        logger.info(f"Fetched {len(tasks)} ClickUp tasks from list {list_id}")
        return tasks

    async def get_task_or_none(self, task_id: str) -> Optional[Dict[str, Any]]:
        """Get a specific task, returning None on 404."""
        try:
            return await self.get_task(task_id)
        except httpx.HTTPStatusError as e:
            if self._status_code(e) == 404:
                return None
            raise

    async def create_task(self, task_data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new task in the configured list"""
        try:
            task = await self._request("POST", f"list/{self.list_id}/task", json=task_data)
            logger.info(f"Created ClickUp task {task.get('id')} in list {self.list_id}")
            return task
        except Exception as e:
            logger.error(f"Failed to create ClickUp task in list {self.list_id}: {e}")
            raise

    async def update_task(self, task_id: str, task_data: Dict[str, Any]) -> Dict[str, Any]:
        """Update an existing task"""
        try:
            task = await self._request("PUT", f"task/{task_id}", json=task_data)
            logger.info(f"Updated ClickUp task {task_id}")
            return task
        except Exception as e:
            logger.error(f"Failed to update ClickUp task {task_id}: {e}")
            raise

    async def delete_task(self, task_id: str) -> None:
        """Delete a task"""
        try:
            await self._request("DELETE", f"task/{task_id}")
            logger.info(f"Deleted ClickUp task {task_id}")
        except Exception as e:
            logger.error(f"Failed to delete ClickUp task {task_id}: {e}")
            raise

    async def get_task_tags(self, task_id: str) -> List[str]:
        """Get the tag names of a task"""
        task = await self.get_task(task_id)
        tags = (task or {}).get("tags") or []
        names = []
        for tag in tags:
            name = tag.get("name") if isinstance(tag, dict) else tag
            if name:
                names.append(str(name))
        return names

    async def add_task_tag(self, task_id: str, tag: str) -> None:
        """Add a tag to a task"""
        try:
            await self._request("POST", f"task/{task_id}/tag/{quote(tag, safe='')}")
            logger.info(f"Added tag '{tag}' to ClickUp task {task_id}")
        except Exception as e:
            logger.warning(f"Failed to add tag '{tag}' to ClickUp task {task_id}: {e}")
            raise

    async def remove_task_tag(self, task_id: str, tag: str) -> None:
        """Remove a tag from a task"""
        try:
            await self._request("DELETE", f"task/{task_id}/tag/{quote(tag, safe='')}")
            logger.info(f"Removed tag '{tag}' from ClickUp task {task_id}")
        except Exception as e:
            logger.warning(f"Failed to remove tag '{tag}' from ClickUp task {task_id}: {e}")
            raise
