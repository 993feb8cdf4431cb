"""
Redis TTL cache.

Each value is stored as ``{"value": ..., "expires_at": epoch}``. The Redis
key itself lives ``stale_grace`` seconds longer than the logical TTL so an
expired value can still be served in stale mode.
"""

import json
import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional

import redis.asyncio as redis

from vibescan.core.config import settings
from vibescan.core.errors import CacheUnavailable
from vibescan.services.cache.base import BaseCache

logger = logging.getLogger(__name__)

CACHE_PREFIX = "vibescan:cache:"


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal and datetime."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


class RedisCache(BaseCache):
    name = "redis"

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        stale_grace: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__()
        self._redis = client
        self._stale_grace = (
            stale_grace if stale_grace is not None else settings.CACHE_STALE_GRACE_SEC
        )
        self._clock = clock

    async def get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
            )
        return self._redis

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def _scan_keys(self, r: redis.Redis, match: str) -> list[str]:
        keys: list[str] = []
        cursor = 0
        while True:
            cursor, batch = await r.scan(cursor, match=match, count=100)
            keys.extend(batch)
            if cursor == 0:
                break
        return keys

    async def _get(self, key: str, allow_stale: bool) -> tuple[Optional[Any], bool]:
        try:
            r = await self.get_redis()
            raw = await r.get(CACHE_PREFIX + key)
            if raw is None:
                return None, False
            envelope = json.loads(raw)
            if self._clock() < envelope["expires_at"]:
                return envelope["value"], True
            if allow_stale:
                return envelope["value"], False
            await r.delete(CACHE_PREFIX + key)
            return None, False
        except (redis.RedisError, OSError, ValueError, KeyError) as e:
            raise CacheUnavailable(str(e)) from e

    async def _set(self, key: str, value: Any, ttl_seconds: int) -> None:
        envelope = {"value": value, "expires_at": self._clock() + ttl_seconds}
        try:
            r = await self.get_redis()
            await r.set(
                CACHE_PREFIX + key,
                json.dumps(envelope, cls=DecimalEncoder),
                ex=ttl_seconds + self._stale_grace,
            )
        except (redis.RedisError, OSError, TypeError) as e:
            raise CacheUnavailable(str(e)) from e

    async def _delete(self, key: str) -> None:
        try:
            r = await self.get_redis()
            await r.delete(CACHE_PREFIX + key)
        except (redis.RedisError, OSError) as e:
            raise CacheUnavailable(str(e)) from e

    async def _delete_matching(self, match: str) -> int:
        try:
            r = await self.get_redis()
            keys = await self._scan_keys(r, match)
            if keys:
                await r.delete(*keys)
            return len(keys)
        except (redis.RedisError, OSError) as e:
            raise CacheUnavailable(str(e)) from e

    async def _invalidate(self, prefix: str) -> int:
        return await self._delete_matching(f"{CACHE_PREFIX}{prefix}*")

    async def _clear(self) -> int:
        deleted = await self._delete_matching(f"{CACHE_PREFIX}*")
        logger.info("Cache cleared (%d keys)", deleted)
        return deleted

    async def _clear_expired(self) -> int:
        now = self._clock()
        deleted = 0
        try:
            r = await self.get_redis()
            for key in await self._scan_keys(r, f"{CACHE_PREFIX}*"):
                raw = await r.get(key)
                if raw is None:
                    continue
                if json.loads(raw).get("expires_at", 0) <= now:
                    deleted += await r.delete(key)
        except (redis.RedisError, OSError, ValueError) as e:
            raise CacheUnavailable(str(e)) from e
        logger.info("Cleared %d expired cache entries", deleted)
        return deleted

    async def _stats(self) -> dict:
        try:
            r = await self.get_redis()
            await r.ping()
            keys = await self._scan_keys(r, f"{CACHE_PREFIX}*")
        except (redis.RedisError, OSError) as e:
            raise CacheUnavailable(str(e)) from e
        return {"total_entries": len(keys)}
