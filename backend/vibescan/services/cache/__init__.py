"""
TTL caches, stale-while-revalidate and the permanent trade-price cache.
"""

import logging
from typing import Optional

from vibescan.core.config import settings
from vibescan.services.cache.base import BaseCache
from vibescan.services.cache.memory import MemoryCache
from vibescan.services.cache.postgres import PostgresCache
from vibescan.services.cache.prices import CachedPrice, PriceStore
from vibescan.services.cache.redis_cache import RedisCache
from vibescan.services.cache.swr import (
    CachedResult,
    CacheStatus,
    StaleWhileRevalidate,
    drain_background_tasks,
)

logger = logging.getLogger(__name__)

_cache: Optional[BaseCache] = None


def create_cache(backend: str) -> BaseCache:
    if backend == "memory":
        return MemoryCache()
    if backend == "postgres":
        return PostgresCache()
    if backend == "redis":
        return RedisCache()
    raise ValueError(f"Unknown cache backend {backend!r}")


def get_cache() -> BaseCache:
    """Get or create the process-wide response cache."""
    global _cache
    if _cache is None:
        _cache = create_cache(settings.CACHE_BACKEND)
        logger.info("Using %s cache backend", _cache.name)
    return _cache


def set_cache(cache: Optional[BaseCache]) -> None:
    global _cache
    _cache = cache


__all__ = [
    "BaseCache",
    "CachedPrice",
    "CachedResult",
    "CacheStatus",
    "MemoryCache",
    "PostgresCache",
    "PriceStore",
    "RedisCache",
    "StaleWhileRevalidate",
    "create_cache",
    "drain_background_tasks",
    "get_cache",
    "set_cache",
]
