"""Keyed in-memory cache with per-key time-to-live.

One instance is owned by the service container and shared by every request
handler. Values are always replaced whole, never mutated in place, so the
worst a concurrent reader can observe is a stale value.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Entry:
    value: Any
    built_at: float           # monotonic clock reading
    built_at_utc: datetime


class TTLCache:
    """get-or-build cache keyed by name"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        # Bumped on invalidation so a build that started earlier cannot
        # store a value computed from pre-invalidation data.
        self._generations: Dict[str, int] = {}

    def _lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _is_fresh(self, entry: Optional[_Entry], ttl_seconds: float) -> bool:
        return entry is not None and (self._clock() - entry.built_at) < ttl_seconds

    async def get_or_build(
        self,
        key: str,
        ttl_seconds: float,
        builder: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return the cached value for `key`, rebuilding it once expired.

        Exceptions raised by `builder` propagate; the previous value (if any)
        stays available through `peek()`.
        """
        entry = self._entries.get(key)
        if self._is_fresh(entry, ttl_seconds):
            return entry.value

        async with self._lock(key):
            # Another caller may have rebuilt it while we waited.
            entry = self._entries.get(key)
            if self._is_fresh(entry, ttl_seconds):
                return entry.value

            return await self._build(key, builder)

    async def rebuild(self, key: str, builder: Callable[[], Awaitable[Any]]) -> Any:
        """Build `key` now, regardless of age.

        The stored value is only replaced once `builder` succeeds; if it
        raises, the previous value stays in place and the error propagates.
        """
        async with self._lock(key):
            return await self._build(key, builder)

    async def _build(self, key: str, builder: Callable[[], Awaitable[Any]]) -> Any:
        generation = self._generations.get(key, 0)
        value = await builder()
        if self._generations.get(key, 0) == generation:
            self._entries[key] = _Entry(
                value=value,
                built_at=self._clock(),
                built_at_utc=datetime.now(timezone.utc).replace(tzinfo=None),
            )
        else:
            logger.info(f"Cache '{key}' invalidated during rebuild; not storing result")
        return value

    def peek(self, key: str) -> Any:
        """Last stored value for `key`, fresh or not (None if never built)."""
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def age_seconds(self, key: str) -> Optional[float]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry.built_at

    def built_at(self, key: str) -> Optional[datetime]:
        entry = self._entries.get(key)
        return entry.built_at_utc if entry is not None else None

    def invalidate(self, key: str) -> bool:
        """Drop `key` immediately. Returns True if a value was cached."""
        self._generations[key] = self._generations.get(key, 0) + 1
        removed = self._entries.pop(key, None) is not None
        if removed:
            logger.info(f"Cache '{key}' cleared")
        return removed

    def clear(self) -> None:
        for key in list(self._entries.keys()):
            self.invalidate(key)

    def keys(self) -> List[str]:
        return list(self._entries.keys())
