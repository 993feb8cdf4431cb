"""
Durable TTL cache on the ``cache_entries`` table.

Survives restarts and is shared between workers. The table is created on
first use so a fresh database works before migrations have run.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from vibescan.core.database import upsert
from vibescan.core.errors import CacheUnavailable
from vibescan.models.cache_entry import CacheEntry
from vibescan.services.cache.base import BaseCache

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PostgresCache(BaseCache):
    name = "postgres"

    def __init__(
        self,
        engine: Optional[AsyncEngine] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__()
        if engine is None:
            from vibescan.core.database import engine as default_engine

            engine = default_engine
        self._engine = engine
        self._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        self._clock = clock
        self._table_ready = False

    async def _ensure_table(self) -> None:
        if self._table_ready:
            return
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(CacheEntry.__table__.create, checkfirst=True)
        except (SQLAlchemyError, OSError) as e:
            raise CacheUnavailable(f"cannot create cache table: {e}") from e
        self._table_ready = True
        logger.info("Cache table ready")

    async def _get(self, key: str, allow_stale: bool) -> tuple[Optional[Any], bool]:
        await self._ensure_table()
        try:
            async with self._session_factory() as session:
                row = await session.get(CacheEntry, key)
                if row is None:
                    return None, False
                if self._clock() < row.expires_at:
                    return row.value, True
                if allow_stale:
                    return row.value, False

                await session.delete(row)
                await session.commit()
                return None, False
        except (SQLAlchemyError, OSError) as e:
            raise CacheUnavailable(str(e)) from e

    async def _set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self._ensure_table()
        now = self._clock()
        row = {
            "key": key,
            "value": value,
            "expires_at": now + timedelta(seconds=ttl_seconds),
            "created_at": now,
            "updated_at": now,
        }
        stmt = upsert(
            self._engine.dialect.name,
            CacheEntry,
            [row],
            index_elements=["key"],
            update_columns=["value", "expires_at", "updated_at"],
        )
        try:
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            raise CacheUnavailable(str(e)) from e

    async def _execute_delete(self, stmt) -> int:
        await self._ensure_table()
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount or 0
        except (SQLAlchemyError, OSError) as e:
            raise CacheUnavailable(str(e)) from e

    async def _delete(self, key: str) -> None:
        await self._execute_delete(delete(CacheEntry).where(CacheEntry.key == key))

    async def _invalidate(self, prefix: str) -> int:
        return await self._execute_delete(
            delete(CacheEntry).where(CacheEntry.key.startswith(prefix, autoescape=True))
        )

    async def _clear(self) -> int:
        count = await self._execute_delete(delete(CacheEntry))
        logger.info("Cleared %d cache entries", count)
        return count

    async def _clear_expired(self) -> int:
        count = await self._execute_delete(
            delete(CacheEntry).where(CacheEntry.expires_at < self._clock())
        )
        logger.info("Cleared %d expired cache entries", count)
        return count

    async def _stats(self) -> dict:
        await self._ensure_table()
        now = self._clock()
        try:
            async with self._session_factory() as session:
                total = await session.scalar(select(func.count()).select_from(CacheEntry))
                expired = await session.scalar(
                    select(func.count())
                    .select_from(CacheEntry)
                    .where(CacheEntry.expires_at < now)
                )
        except (SQLAlchemyError, OSError) as e:
            raise CacheUnavailable(str(e)) from e

        total = total or 0
        expired = expired or 0
        return {
            "total_entries": total,
            "expired_entries": expired,
            "valid_entries": total - expired,
        }
