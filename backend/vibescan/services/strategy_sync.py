"""
Strategy ledger persistence.

Transfers into and out of the strategy contract, and burns of the strategy
token, are appended to ``chain_transfers`` / ``token_burns`` block range by
block range. ``sync_state`` records how far the sync got so each run only
reads new blocks. The ledger itself is never stored: it is replayed in full
from the stored transfers whenever it is needed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from vibescan.core.config import settings
from vibescan.core.database import upsert
from vibescan.models.chain import ChainTransfer, SyncState, TokenBurn
from vibescan.services.chain import BurnTransaction, EtherscanClient, Transfer
from vibescan.services.chain.logs import address_to_topic

logger = logging.getLogger(__name__)

# A sync flagged as running for longer than this is assumed to have died
SYNC_LOCK_TIMEOUT = timedelta(hours=1)
INSERT_CHUNK_SIZE = 500


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class SyncResult:
    status: str
    from_block: int
    to_block: int
    transfers_fetched: int = 0
    burns_fetched: int = 0
    duration_sec: float = 0.0

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "from_block": self.from_block,
            "to_block": self.to_block,
            "transfers_fetched": self.transfers_fetched,
            "burns_fetched": self.burns_fetched,
            "duration_sec": round(self.duration_sec, 2),
        }


def _chunks(rows: list[dict], size: int = INSERT_CHUNK_SIZE) -> Iterable[list[dict]]:
    for i in range(0, len(rows), size):
        yield rows[i : i + size]


class StrategySyncService:
    """
    Usage:
        sync = StrategySyncService()
        await sync.sync()
        transfers = await sync.load_transfers()
    """

    def __init__(
        self,
        engine: Optional[AsyncEngine] = None,
        chain: Optional[EtherscanClient] = None,
        *,
        strategy_address: Optional[str] = None,
        collection_address: Optional[str] = None,
        start_block: Optional[int] = None,
    ):
        if engine is None:
            from vibescan.core.database import engine as default_engine

            engine = default_engine
        self._engine = engine
        self._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        self.chain = chain or EtherscanClient()
        self.strategy_address = (strategy_address or settings.STRATEGY_TOKEN_ADDRESS).lower()
        self.collection_address = (collection_address or settings.CONTRACT_ADDRESS).lower()
        self.start_block = (
            start_block if start_block is not None else settings.STRATEGY_DEPLOYMENT_BLOCK
        )
        self._tables_ready = False

    async def _ensure_tables(self) -> None:
        if self._tables_ready:
            return
        async with self._engine.begin() as conn:
            for model in (ChainTransfer, TokenBurn, SyncState):
                await conn.run_sync(model.__table__.create, checkfirst=True)
        self._tables_ready = True

    # ── sync state ───────────────────────────────────────────────────────

    async def _acquire(self) -> Optional[int]:
        """Mark the sync as running. Returns the first block to read, or None if busy."""
        async with self._session_factory() as session:
            state = await session.get(SyncState, self.strategy_address)
            now = utcnow()
            if state is None:
                state = SyncState(
                    contract_address=self.strategy_address,
                    last_synced_block=0,
                    is_syncing=False,
                    updated_at=now,
                )
                session.add(state)
            elif state.is_syncing and now - state.updated_at < SYNC_LOCK_TIMEOUT:
                return None
            elif state.is_syncing:
                logger.warning(
                    "Strategy sync lock from %s expired, taking over", state.updated_at
                )

            state.is_syncing = True
            state.updated_at = now
            await session.commit()
            return max(state.last_synced_block + 1, self.start_block)

    async def _release(self, last_block: Optional[int] = None, error: Optional[str] = None):
        async with self._session_factory() as session:
            state = await session.get(SyncState, self.strategy_address)
            if state is None:
                return
            state.is_syncing = False
            state.last_error = error
            state.updated_at = utcnow()
            if last_block is not None:
                state.last_synced_block = last_block
            await session.commit()

    async def get_status(self) -> dict:
        await self._ensure_tables()
        async with self._session_factory() as session:
            state = await session.get(SyncState, self.strategy_address)
        if state is None:
            return {
                "contract_address": self.strategy_address,
                "last_synced_block": None,
                "is_syncing": False,
                "last_error": None,
                "updated_at": None,
            }
        return {
            "contract_address": state.contract_address,
            "last_synced_block": state.last_synced_block,
            "is_syncing": state.is_syncing,
            "last_error": state.last_error,
            "updated_at": state.updated_at.isoformat() if state.updated_at else None,
        }

    # ── sync ─────────────────────────────────────────────────────────────

    async def sync(self) -> SyncResult:
        """
        Read new strategy transfers and burns up to the current head block.

        Returns immediately with status ``already_syncing`` if another sync
        holds the lock. Provider errors are recorded in ``sync_state`` and
        re-raised.
        """
        await self._ensure_tables()
        started = utcnow()

        from_block = await self._acquire()
        if from_block is None:
            logger.info("Strategy sync already running, skipping")
            return SyncResult(status="already_syncing", from_block=0, to_block=0)

        try:
            to_block = await self.chain.get_current_block_number()
            if from_block > to_block:
                await self._release(last_block=None)
                return SyncResult(status="up_to_date", from_block=from_block, to_block=to_block)

            topic = address_to_topic(self.strategy_address)
            incoming = await self.chain.get_logs_batched(
                self.collection_address, from_block, to_block, topics={2: topic}
            )
            outgoing = await self.chain.get_logs_batched(
                self.collection_address, from_block, to_block, topics={1: topic}
            )
            burns = await self.chain.get_burns_batched(self.strategy_address, from_block, to_block)

            await self.store_transfers(incoming + outgoing)
            await self.store_burns(burns)
        except Exception as e:
            logger.error("Strategy sync from block %d failed: %s", from_block, e, exc_info=True)
            await self._release(error=str(e))
            raise

        await self._release(last_block=to_block)
        result = SyncResult(
            status="synced",
            from_block=from_block,
            to_block=to_block,
            transfers_fetched=len(incoming) + len(outgoing),
            burns_fetched=len(burns),
            duration_sec=(utcnow() - started).total_seconds(),
        )
        logger.info(
            "Strategy sync blocks %d-%d: %d transfers, %d burns in %.1fs",
            from_block,
            to_block,
            result.transfers_fetched,
            result.burns_fetched,
            result.duration_sec,
        )
        return result

    # ── storage ──────────────────────────────────────────────────────────

    async def _insert_ignoring_duplicates(self, model, rows: list[dict]) -> None:
        if not rows:
            return
        async with self._session_factory() as session:
            for chunk in _chunks(rows):
                stmt = upsert(
                    self._engine.dialect.name,
                    model,
                    chunk,
                    index_elements=["tx_hash", "log_index"],
                )
                await session.execute(stmt)
            await session.commit()

    async def store_transfers(self, transfers: Iterable[Transfer]) -> None:
        await self._ensure_tables()
        rows = [
            {
                "tx_hash": t.tx_hash.lower(),
                "log_index": t.log_index or 0,
                "block_number": t.block_number,
                "timestamp": t.timestamp,
                "from_addr": t.from_addr,
                "to_addr": t.to_addr,
                "token_id": t.token_id,
            }
            for t in transfers
        ]
        await self._insert_ignoring_duplicates(ChainTransfer, rows)

    async def store_burns(self, burns: Iterable[BurnTransaction]) -> None:
        await self._ensure_tables()
        rows = [
            {
                "tx_hash": b.tx_hash.lower(),
                "log_index": b.log_index or 0,
                "block_number": b.block_number,
                "timestamp": b.timestamp,
                "amount": b.amount,
                "burn_address": b.burn_address,
            }
            for b in burns
        ]
        await self._insert_ignoring_duplicates(TokenBurn, rows)

    async def load_transfers(self) -> list[Transfer]:
        await self._ensure_tables()
        async with self._session_factory() as session:
            rows = (
                await session.scalars(
                    select(ChainTransfer).order_by(
                        ChainTransfer.block_number, ChainTransfer.log_index
                    )
                )
            ).all()
        return [
            Transfer(
                tx_hash=r.tx_hash,
                block_number=r.block_number,
                timestamp=r.timestamp,
                from_addr=r.from_addr,
                to_addr=r.to_addr,
                token_id=r.token_id,
                log_index=r.log_index,
            )
            for r in rows
        ]

    async def load_burns(self) -> list[BurnTransaction]:
        await self._ensure_tables()
        async with self._session_factory() as session:
            rows = (
                await session.scalars(select(TokenBurn).order_by(TokenBurn.timestamp))
            ).all()
        return [
            BurnTransaction(
                tx_hash=r.tx_hash,
                block_number=r.block_number,
                timestamp=r.timestamp,
                amount=r.amount,
                burn_address=r.burn_address,
                log_index=r.log_index,
            )
            for r in rows
        ]


_sync_service: Optional[StrategySyncService] = None


def get_strategy_sync() -> StrategySyncService:
    global _sync_service
    if _sync_service is None:
        _sync_service = StrategySyncService()
    return _sync_service
