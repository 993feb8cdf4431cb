"""
Permanent tx hash -> trade price cache.

Two tiers: a bounded LRU dict in front of the ``price_cache`` table. A
finalized transaction's price never changes, so entries have no TTL.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from vibescan.core.config import settings
from vibescan.core.database import upsert
from vibescan.models.price_cache import PriceCacheEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedPrice:
    tx_hash: str
    price_eth: float
    currency_symbol: str
    marketplace_id: str
    image_url: Optional[str] = None


class PriceStore:
    """
    Usage:
        store = PriceStore()                  # memory + Postgres
        store = PriceStore(persistent=False)  # memory only
    """

    def __init__(
        self,
        engine: Optional[AsyncEngine] = None,
        persistent: bool = True,
        max_memory_entries: Optional[int] = None,
    ):
        if persistent and engine is None:
            from vibescan.core.database import engine as default_engine

            engine = default_engine
        self._engine = engine if persistent else None
        self._session_factory = (
            async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)
            if self._engine is not None
            else None
        )
        self._max_memory = max_memory_entries or settings.PRICE_CACHE_MEMORY_SIZE
        self._memory: OrderedDict[str, CachedPrice] = OrderedDict()
        self._table_ready = False

        self.memory_hits = 0
        self.db_hits = 0
        self.misses = 0

    # ── memory tier ──────────────────────────────────────────────────────

    def _remember(self, price: CachedPrice) -> None:
        self._memory[price.tx_hash] = price
        self._memory.move_to_end(price.tx_hash)
        while len(self._memory) > self._max_memory:
            self._memory.popitem(last=False)

    # ── database tier ────────────────────────────────────────────────────

    async def _ensure_table(self) -> bool:
        if self._session_factory is None:
            return False
        if self._table_ready:
            return True
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(PriceCacheEntry.__table__.create, checkfirst=True)
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Price cache table unavailable: %s", e)
            return False
        self._table_ready = True
        return True

    # ── public API ───────────────────────────────────────────────────────

    async def get_many(self, tx_hashes: Iterable[str]) -> dict[str, CachedPrice]:
        """Look up prices by (any-case) tx hash. Keys of the result are lowercased."""
        wanted = {h.lower() for h in tx_hashes}
        found: dict[str, CachedPrice] = {}

        for tx_hash in wanted:
            price = self._memory.get(tx_hash)
            if price is not None:
                self._memory.move_to_end(tx_hash)
                found[tx_hash] = price
        self.memory_hits += len(found)

        remaining = wanted - found.keys()
        if remaining and await self._ensure_table():
            try:
                async with self._session_factory() as session:
                    rows = (
                        await session.scalars(
                            select(PriceCacheEntry).where(
                                PriceCacheEntry.tx_hash.in_(list(remaining))
                            )
                        )
                    ).all()
            except (SQLAlchemyError, OSError) as e:
                logger.warning("Price cache read failed: %s", e)
                rows = []

            for row in rows:
                price = CachedPrice(
                    tx_hash=row.tx_hash,
                    price_eth=row.price_eth,
                    currency_symbol=row.payment_symbol,
                    marketplace_id=row.marketplace,
                    image_url=row.image_url,
                )
                self._remember(price)
                found[row.tx_hash] = price
            self.db_hits += len(rows)

        self.misses += len(wanted) - len(found)
        return found

    async def get(self, tx_hash: str) -> Optional[CachedPrice]:
        return (await self.get_many([tx_hash])).get(tx_hash.lower())

    async def put_many(self, prices: Iterable[CachedPrice]) -> None:
        prices = [p for p in prices]
        if not prices:
            return
        for price in prices:
            self._remember(price)

        if not await self._ensure_table():
            return

        now = datetime.now(timezone.utc).replace(tzinfo=None)
        # Last write wins within one batch
        rows = {
            p.tx_hash: {
                "tx_hash": p.tx_hash,
                "price_eth": p.price_eth,
                "payment_symbol": p.currency_symbol,
                "marketplace": p.marketplace_id,
                "image_url": p.image_url,
                "created_at": now,
            }
            for p in prices
        }
        stmt = upsert(
            self._engine.dialect.name,
            PriceCacheEntry,
            list(rows.values()),
            index_elements=["tx_hash"],
        )
        try:
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Price cache write failed for %d rows: %s", len(rows), e)

    async def put(self, price: CachedPrice) -> None:
        await self.put_many([price])

    def get_stats(self) -> dict:
        return {
            "memory_entries": len(self._memory),
            "memory_capacity": self._max_memory,
            "memory_hits": self.memory_hits,
            "db_hits": self.db_hits,
            "misses": self.misses,
            "persistent": self._session_factory is not None,
        }
