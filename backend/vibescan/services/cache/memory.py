"""
In-process TTL cache. Lost on restart.
"""

import time
from typing import Any, Callable, Optional

from vibescan.services.cache.base import BaseCache


class MemoryCache(BaseCache):
    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.time):
        super().__init__()
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}

    async def _get(self, key: str, allow_stale: bool) -> tuple[Optional[Any], bool]:
        entry = self._entries.get(key)
        if entry is None:
            return None, False

        value, expires_at = entry
        if self._clock() < expires_at:
            return value, True
        if allow_stale:
            return value, False

        del self._entries[key]
        return None, False

    async def _set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    async def _delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def _invalidate(self, prefix: str) -> int:
        keys = [k for k in self._entries if k.startswith(prefix)]
        for k in keys:
            del self._entries[k]
        return len(keys)

    async def _clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    async def _clear_expired(self) -> int:
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for k in expired:
            del self._entries[k]
        return len(expired)

    async def _stats(self) -> dict:
        now = self._clock()
        expired = sum(1 for _, expires_at in self._entries.values() if expires_at <= now)
        return {
            "total_entries": len(self._entries),
            "expired_entries": expired,
            "valid_entries": len(self._entries) - expired,
        }
