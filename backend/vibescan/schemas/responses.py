from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from vibescan.services.cache import CachedResult, CacheStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ResponseMeta(BaseModel):
    cache_status: CacheStatus
    stale: bool = False
    generated_at: datetime = Field(default_factory=_now)
    data_quality: Optional[dict[str, Any]] = None


class ApiResponse(BaseModel):
    """
    Envelope for every cache-fronted endpoint.

    ``meta.stale`` is true whenever the payload came from an expired cache
    entry (served while refreshing, after a failed fetch, or after a timeout).
    """

    data: Any
    meta: ResponseMeta

    @classmethod
    def from_cached(cls, result: CachedResult, data: Any = None) -> "ApiResponse":
        value = result.value
        quality = value.get("data_quality") if isinstance(value, dict) else None
        return cls(
            data=value if data is None else data,
            meta=ResponseMeta(
                cache_status=result.status,
                stale=result.is_stale,
                data_quality=quality,
            ),
        )


class EventsPage(BaseModel):
    days: int
    total: int
    limit: int
    offset: int
    sales: list[dict[str, Any]]
    unpriced_transfers: int = 0
    eth_price_usd: Optional[float] = None


class SyncStatusResponse(BaseModel):
    contract_address: str
    last_synced_block: Optional[int] = None
    is_syncing: bool = False
    last_error: Optional[str] = None
    updated_at: Optional[str] = None
    scheduler: Optional[dict[str, Any]] = None


class CacheCleanupResponse(BaseModel):
    success: bool
    deleted_count: int
    timestamp: datetime = Field(default_factory=_now)


class CacheClearResponse(BaseModel):
    success: bool
    message: str
    deleted_count: int
    timestamp: datetime = Field(default_factory=_now)
