"""
TTL cache contract shared by the in-memory, Postgres and Redis backends.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from vibescan.core.errors import CacheUnavailable

logger = logging.getLogger(__name__)


class BaseCache(ABC):
    """
    Key -> JSON-serialisable value store with expiry.

    ``get(key)`` returns a value only while it is fresh; an expired entry
    is deleted on a plain read but still returned when ``allow_stale`` is
    set. ``set`` overwrites by key, last writer wins.

    Backends raise ``CacheUnavailable`` from the underscore methods; the
    public methods log it and degrade (reads miss, writes are dropped,
    counts are 0) so a broken cache never fails a request.
    """

    name: str = ""

    def __init__(self):
        self.hits = 0
        self.stale_hits = 0
        self.misses = 0
        self.errors = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, key: str, allow_stale: bool = False) -> Optional[Any]:
        try:
            value, fresh = await self._get(key, allow_stale)
        except CacheUnavailable as e:
            self._record_error("get", key, e)
            return None

        self._count(value, fresh)
        return value

    async def lookup(self, key: str) -> tuple[Optional[Any], bool]:
        """Return (value, is_fresh) without evicting an expired entry."""
        try:
            value, fresh = await self._get(key, True)
        except CacheUnavailable as e:
            self._record_error("get", key, e)
            return None, False

        self._count(value, fresh)
        return value, fresh

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self._set(key, value, ttl_seconds)
        except CacheUnavailable as e:
            self._record_error("set", key, e)

    async def delete(self, key: str) -> None:
        try:
            await self._delete(key)
        except CacheUnavailable as e:
            self._record_error("delete", key, e)

    async def invalidate(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``."""
        try:
            return await self._invalidate(prefix)
        except CacheUnavailable as e:
            self._record_error("invalidate", prefix, e)
            return 0

    async def clear(self) -> int:
        try:
            return await self._clear()
        except CacheUnavailable as e:
            self._record_error("clear", "*", e)
            return 0

    async def clear_expired(self) -> int:
        try:
            return await self._clear_expired()
        except CacheUnavailable as e:
            self._record_error("clear_expired", "*", e)
            return 0

    async def get_stats(self) -> dict:
        stats = {
            "backend": self.name,
            "hits": self.hits,
            "stale_hits": self.stale_hits,
            "misses": self.misses,
            "errors": self.errors,
        }
        try:
            stats.update(await self._stats())
        except CacheUnavailable as e:
            self._record_error("stats", "*", e)
            stats["available"] = False
        return stats

    async def health_check(self) -> bool:
        try:
            await self._stats()
            return True
        except CacheUnavailable:
            return False

    async def close(self) -> None:
        pass

    def _count(self, value: Optional[Any], fresh: bool) -> None:
        if value is None:
            self.misses += 1
        elif fresh:
            self.hits += 1
        else:
            self.stale_hits += 1

    def _record_error(self, op: str, key: str, exc: Exception) -> None:
        self.errors += 1
        logger.warning("%s cache %s failed for %s: %s", self.name, op, key, exc)

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _get(self, key: str, allow_stale: bool) -> tuple[Optional[Any], bool]:
        """Return (value, is_fresh); (None, False) when absent."""
        ...

    @abstractmethod
    async def _set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    async def _delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def _invalidate(self, prefix: str) -> int:
        ...

    @abstractmethod
    async def _clear(self) -> int:
        ...

    @abstractmethod
    async def _clear_expired(self) -> int:
        ...

    @abstractmethod
    async def _stats(self) -> dict:
        ...
