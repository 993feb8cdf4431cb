"""Run a single strategy ledger sync and cache cleanup."""

import asyncio
import logging

from vibescan.services.scheduler import ContinuousSyncer

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def main():
    """Execute one sync cycle."""
    logger.info("Starting single sync cycle...")

    syncer = ContinuousSyncer()
    await syncer.run_cycle()

    stats = syncer.get_stats()
    logger.info("=" * 60)
    logger.info("SYNC COMPLETE")
    logger.info("=" * 60)
    logger.info("Successful syncs: %d, failed: %d", stats["total_syncs"], stats["failed_syncs"])
    logger.info("Transfers fetched: %d", stats["total_transfers"])
    logger.info("Burns fetched: %d", stats["total_burns"])
    logger.info("Expired cache entries removed: %d", stats["total_cleaned"])
    logger.info("Duration: %.1fs", stats["last_sync_duration_sec"])

    await syncer.cache.close()


if __name__ == "__main__":
    asyncio.run(main())
