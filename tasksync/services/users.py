"""User directory backed by the internal backend, with the ClickUp roster as fallback"""

import logging
from typing import Any, Dict, List, Optional

from tasksync.schemas import ExternalUser, InternalUser

logger = logging.getLogger(__name__)

USERS_CACHE_KEY = "users"


def _fallback_email(username: str) -> str:
    return f"{username.lower().replace(' ', '')}@clickup.local"


class UserDirectory:
    """Cached user listing and import of unmatched ClickUp users"""

    def __init__(self, backend, clickup, cache, mapper=None, *, ttl_seconds: float = 300):
        self.backend = backend
        self.clickup = clickup
        self.cache = cache
        self.mapper = mapper
        self.ttl_seconds = ttl_seconds

    async def _load(self) -> List[Dict[str, Any]]:
        try:
            users = await self.backend.list_users()
            if users:
                logger.info(f"Loaded {len(users)} users from the backend")
                return users
            logger.warning("Backend returned no users; falling back to the ClickUp roster")
        except Exception as e:
            logger.warning(f"Backend user listing failed ({e}); falling back to the ClickUp roster")

        members = await self.clickup.get_team_members()
        shaped = []
        for index, member in enumerate(members, start=1):
            external = ExternalUser.from_clickup(member)
            if external is None:
                continue
            username = external.username or "User"
            shaped.append(
                {
                    # Positional ids: these users do not exist in the backend.
                    "id": index,
                    "name": external.display_name or username,
                    "username": username,
                    "email": external.email or _fallback_email(username),
                    "clickup_id": external.external_id,
                }
            )
        logger.info(f"Loaded {len(shaped)} users from the ClickUp roster")
        return shaped

    async def list_users(self) -> List[Dict[str, Any]]:
        return await self.cache.get_or_build(USERS_CACHE_KEY, self.ttl_seconds, self._load)

    async def list_internal_users(self) -> List[InternalUser]:
        return [u for u in (InternalUser.from_backend(r) for r in await self.list_users()) if u]

    async def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        for user in await self.list_users():
            parsed = InternalUser.from_backend(user)
            if parsed and parsed.internal_id == user_id:
                return user
        return await self.backend.get_user(user_id)

    async def import_external_users(self) -> Dict[str, Any]:
        """Create backend users for ClickUp members no rule could match."""
        if self.mapper is None:
            raise RuntimeError("User import requires an identity mapper")

        mapping = await self.mapper.refresh()
        stats: Dict[str, int] = {
            "created": 0,
            "failed": 0,
            "already_mapped": mapping.external_count - len(mapping.unmatched),
        }
        for user in mapping.unmatched:
            username = user.username or user.display_name or f"clickup-{user.external_id}"
            payload = {
                "name": user.display_name or username,
                "username": username,
                "email": user.email or _fallback_email(username),
                "clickup_id": user.external_id,
            }
            try:
                await self.backend.create_user(payload)
                stats["created"] += 1
            except Exception as e:
                logger.warning(f"Failed to import ClickUp user {user.external_id}: {e}")
                stats["failed"] += 1

        if stats["created"]:
            self.clear_cache()
            self.mapper.clear_cache()
        logger.info(f"Imported ClickUp users: {stats}")
        return stats

    def clear_cache(self) -> None:
        self.cache.invalidate(USERS_CACHE_KEY)
