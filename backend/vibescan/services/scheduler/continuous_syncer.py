"""
Background jobs: periodic strategy ledger sync and expired-cache cleanup.

Runs as one asyncio task inside the API process. Sync runs every
SYNC_INTERVAL_SEC; cache cleanup piggybacks on the same loop and runs once
CACHE_CLEANUP_INTERVAL_SEC has passed since the last cleanup.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from vibescan.core.config import settings
from vibescan.services.cache import BaseCache, get_cache
from vibescan.services.strategy_sync import StrategySyncService, get_strategy_sync

logger = logging.getLogger(__name__)


class ContinuousSyncer:
    """
    Features:
    - Incremental strategy transfer and burn sync
    - Expired cache entry cleanup
    - Error recovery: a failed cycle is logged and the loop carries on
    - Statistics tracking
    """

    def __init__(
        self,
        sync_interval: Optional[int] = None,
        cleanup_interval: Optional[int] = None,
        strategy: Optional[StrategySyncService] = None,
        cache: Optional[BaseCache] = None,
    ):
        self.sync_interval = sync_interval or settings.SYNC_INTERVAL_SEC
        self.cleanup_interval = cleanup_interval or settings.CACHE_CLEANUP_INTERVAL_SEC
        self._strategy = strategy
        self._cache = cache
        self._is_running = False
        self._task: Optional[asyncio.Task] = None

        # Statistics
        self.total_syncs = 0
        self.failed_syncs = 0
        self.total_transfers = 0
        self.total_burns = 0
        self.total_cleaned = 0
        self.last_sync_time: Optional[datetime] = None
        self.last_sync_duration: float = 0
        self._last_cleanup: Optional[float] = None

    @property
    def strategy(self) -> StrategySyncService:
        if self._strategy is None:
            self._strategy = get_strategy_sync()
        return self._strategy

    @property
    def cache(self) -> BaseCache:
        if self._cache is None:
            self._cache = get_cache()
        return self._cache

    async def start(self):
        if self._is_running:
            logger.warning("ContinuousSyncer already running")
            return

        self._is_running = True
        self._task = asyncio.create_task(self._sync_loop())
        logger.info(
            "ContinuousSyncer started with %ds sync interval, %ds cleanup interval",
            self.sync_interval,
            self.cleanup_interval,
        )

    async def stop(self):
        if not self._is_running:
            return

        logger.info("Stopping ContinuousSyncer...")
        self._is_running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info("ContinuousSyncer stopped")

    async def _sync_loop(self):
        logger.info("ContinuousSyncer loop started")

        while self._is_running:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("ContinuousSyncer error in cycle: %s", e, exc_info=True)

            if self._is_running:
                await asyncio.sleep(self.sync_interval)

    async def run_cycle(self):
        """One sync, then a cache cleanup if one is due."""
        started = datetime.now(timezone.utc)

        try:
            result = await self.strategy.sync()
        except Exception as e:
            self.failed_syncs += 1
            logger.error("Strategy sync failed: %s", e, exc_info=True)
        else:
            self.total_syncs += 1
            self.total_transfers += result.transfers_fetched
            self.total_burns += result.burns_fetched
            self.last_sync_time = started
            self.last_sync_duration = result.duration_sec
            logger.info(
                "Sync cycle #%d complete: %s, %d transfers, %d burns",
                self.total_syncs,
                result.status,
                result.transfers_fetched,
                result.burns_fetched,
            )

        if (
            self._last_cleanup is None
            or time.monotonic() - self._last_cleanup >= self.cleanup_interval
        ):
            await self.cleanup_cache()

    async def cleanup_cache(self) -> int:
        removed = await self.cache.clear_expired()
        self._last_cleanup = time.monotonic()
        self.total_cleaned += removed
        logger.info("Cache cleanup removed %d expired entries", removed)
        return removed

    def get_stats(self) -> dict:
        return {
            "is_running": self._is_running,
            "total_syncs": self.total_syncs,
            "failed_syncs": self.failed_syncs,
            "total_transfers": self.total_transfers,
            "total_burns": self.total_burns,
            "total_cleaned": self.total_cleaned,
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "last_sync_duration_sec": self.last_sync_duration,
            "sync_interval_sec": self.sync_interval,
            "cleanup_interval_sec": self.cleanup_interval,
        }


# Global syncer instance
_continuous_syncer: Optional[ContinuousSyncer] = None


def get_continuous_syncer() -> ContinuousSyncer:
    """Get or create the global continuous syncer instance."""
    global _continuous_syncer
    if _continuous_syncer is None:
        _continuous_syncer = ContinuousSyncer()
    return _continuous_syncer


async def start_continuous_syncer():
    syncer = get_continuous_syncer()
    await syncer.start()


async def stop_continuous_syncer():
    syncer = get_continuous_syncer()
    await syncer.stop()
