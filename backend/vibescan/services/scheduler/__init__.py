"""
Scheduling utilities for background ledger sync and cache cleanup.
"""

from vibescan.services.scheduler.continuous_syncer import (
    ContinuousSyncer,
    get_continuous_syncer,
    start_continuous_syncer,
    stop_continuous_syncer,
)

__all__ = [
    "ContinuousSyncer",
    "get_continuous_syncer",
    "start_continuous_syncer",
    "stop_continuous_syncer",
]
