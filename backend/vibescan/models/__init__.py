from vibescan.models.base import Base
from vibescan.models.cache_entry import CacheEntry
from vibescan.models.price_cache import PriceCacheEntry
from vibescan.models.chain import ChainTransfer, SyncState, TokenBurn

__all__ = ["Base", "CacheEntry", "PriceCacheEntry", "ChainTransfer", "TokenBurn", "SyncState"]
