"""
Stale-while-revalidate on top of any BaseCache.

    fresh hit   -> return it
    stale hit   -> return it, refresh in a detached task
    nothing     -> fetch under a deadline, store, return
    fetch fails -> fall back to stale if any, else raise

Detached refreshes are tracked in a module-level set until they finish and
only ever log their failures.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from vibescan.core.config import settings
from vibescan.core.errors import EndpointTimeout
from vibescan.services.cache.base import BaseCache

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]

_background_tasks: set[asyncio.Task] = set()


class CacheStatus(str, Enum):
    HIT = "hit"
    MISS = "miss"
    STALE = "stale"
    FALLBACK = "fallback"
    TIMEOUT = "timeout"


@dataclass
class CachedResult:
    value: Any
    status: CacheStatus

    @property
    def is_stale(self) -> bool:
        return self.status in (CacheStatus.STALE, CacheStatus.FALLBACK, CacheStatus.TIMEOUT)

    @property
    def timed_out(self) -> bool:
        return self.status == CacheStatus.TIMEOUT


class StaleWhileRevalidate:
    def __init__(self, cache: BaseCache, timeout_sec: Optional[float] = None):
        self.cache = cache
        self.timeout_sec = timeout_sec if timeout_sec is not None else settings.REQUEST_TIMEOUT_SEC
        self._inflight: dict[str, asyncio.Task] = {}
        # Tasks whose outcome a caller is waiting on and reports itself
        self._awaited: set[asyncio.Task] = set()

    async def get_or_fetch(
        self,
        key: str,
        ttl: int,
        fetcher: Fetcher,
        *,
        force_refresh: bool = False,
        timeout: Optional[float] = None,
    ) -> CachedResult:
        stale, fresh = await self.cache.lookup(key)
        if fresh and not force_refresh:
            return CachedResult(stale, CacheStatus.HIT)

        if stale is not None and not force_refresh:
            logger.info("Serving stale %s while refreshing", key)
            self._refresh(key, ttl, fetcher)
            return CachedResult(stale, CacheStatus.STALE)

        deadline = timeout if timeout is not None else self.timeout_sec
        task = self._refresh(key, ttl, fetcher)
        self._awaited.add(task)
        try:
            # The fetch keeps running past the deadline and still fills the cache
            value = await asyncio.wait_for(asyncio.shield(task), deadline)
        except asyncio.TimeoutError:
            self._awaited.discard(task)
            if stale is not None:
                logger.warning("Fetch for %s timed out after %.0fs, serving stale", key, deadline)
                return CachedResult(stale, CacheStatus.TIMEOUT)
            raise EndpointTimeout(key, deadline)
        except Exception as e:
            if stale is not None:
                logger.warning("Fetch for %s failed (%s), serving stale", key, e)
                return CachedResult(stale, CacheStatus.FALLBACK)
            raise

        return CachedResult(value, CacheStatus.MISS)

    def _refresh(self, key: str, ttl: int, fetcher: Fetcher) -> asyncio.Task:
        """Start (or join) the single in-flight refresh for ``key``."""
        task = self._inflight.get(key)
        if task is not None and not task.done():
            return task

        task = asyncio.create_task(self._fetch_and_store(key, ttl, fetcher))
        self._inflight[key] = task
        _background_tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(key, t))
        return task

    async def _fetch_and_store(self, key: str, ttl: int, fetcher: Fetcher) -> Any:
        value = await fetcher()
        await self.cache.set(key, value, ttl)
        logger.debug("Refreshed %s", key)
        return value

    def _on_done(self, key: str, task: asyncio.Task) -> None:
        awaited = task in self._awaited
        self._awaited.discard(task)
        _background_tasks.discard(task)
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and not awaited:
            logger.warning("Refresh of %s failed: %s", key, exc, exc_info=exc)


async def drain_background_tasks() -> None:
    """Wait for detached refreshes to settle. Used on shutdown and in tests."""
    while _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)
