"""Internal task backend API client"""
import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)


class BackendClient:
    """Wrapper for the internal backend's task and user endpoints"""

    # The backend has exposed its roster under both names over time.
    USER_ENDPOINTS = ("users", "members")

    def __init__(
        self,
        base_url: str,
        *,
        api_token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.api_token = api_token
        self.http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self):
        await self.http.aclose()

    def _headers(self) -> Dict[str, str]:
        """Auth header attached to every call (the token may be rotated at runtime)."""
        if not self.api_token:
            return {}
        return {"Authorization": f"Bearer {self.api_token}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        response = await self.http.request(
            method, path, json=json, params=params, headers=self._headers()
        )
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _as_list(data: Any) -> List[Dict[str, Any]]:
        """Normalize list responses (bare list, single object, or {"data": [...]})."""
        if data is None:
            return []
        if isinstance(data, list):
            return [item for item in data if isinstance(item, dict)]
        if isinstance(data, dict):
            inner = data.get("data")
            if isinstance(inner, list):
                return [item for item in inner if isinstance(item, dict)]
            return [data]
        return []

    # Tasks

    async def list_tasks(self, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """List tasks, optionally filtered (e.g. {"clickup_id": "..."})"""
        try:
            return self._as_list(await self._request("GET", "tasks", params=params))
        except Exception as e:
            logger.error(f"Failed to list backend tasks (params={params}): {e}")
            raise

    async def create_task(self, task_data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new task"""
        try:
            task = await self._request("POST", "tasks", json=task_data)
            logger.info(f"Created backend task for clickup_id={task_data.get('clickup_id')}")
            return task or {}
        except Exception as e:
            logger.error(f"Failed to create backend task: {e}")
            raise

    async def update_task(self, task_id: int, task_data: Dict[str, Any]) -> Dict[str, Any]:
        """Update an existing task"""
        try:
            task = await self._request("PUT", f"tasks/{int(task_id)}", json=task_data)
            logger.info(f"Updated backend task {task_id}")
            return task or {}
        except Exception as e:
            logger.error(f"Failed to update backend task {task_id}: {e}")
            raise

    async def delete_task(self, task_id: int) -> None:
        """Delete a task"""
        try:
            await self._request("DELETE", f"tasks/{int(task_id)}")
            logger.info(f"Deleted backend task {task_id}")
        except Exception as e:
            logger.error(f"Failed to delete backend task {task_id}: {e}")
            raise

    # Users

    async def list_users(self) -> List[Dict[str, Any]]:
        """List users, trying each known roster endpoint in turn"""
        last_error: Optional[Exception] = None
        answered = False
        for endpoint in self.USER_ENDPOINTS:
            try:
                users = self._as_list(await self._request("GET", endpoint))
            except httpx.HTTPError as e:
                logger.warning(f"Backend endpoint '{endpoint}' failed: {e}")
                last_error = e
                continue
            answered = True
            if users:
                return users
        if not answered and last_error is not None:
            raise last_error
        return []

    async def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        """Get a user, returning None on 404."""
        try:
            return await self._request("GET", f"users/{int(user_id)}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            logger.error(f"Failed to get backend user {user_id}: {e}")
            raise

    async def create_user(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new user"""
        try:
            user = await self._request("POST", "users", json=user_data)
            logger.info(f"Created backend user {user_data.get('email') or user_data.get('name')}")
            return user or {}
        except Exception as e:
            logger.error(f"Failed to create backend user: {e}")
            raise

    async def update_user(self, user_id: int, user_data: Dict[str, Any]) -> Dict[str, Any]:
        """Update an existing user"""
        try:
            user = await self._request("PUT", f"users/{int(user_id)}", json=user_data)
            logger.info(f"Updated backend user {user_id}")
            return user or {}
        except Exception as e:
            logger.error(f"Failed to update backend user {user_id}: {e}")
            raise
