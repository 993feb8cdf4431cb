"""
Cache maintenance endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from vibescan.api.errors import upstream_errors
from vibescan.schemas.responses import ApiResponse, CacheCleanupResponse, CacheClearResponse
from vibescan.services.cache import BaseCache, get_cache
from vibescan.services.rate_limiting import get_all_limiter_stats
from vibescan.services.market_data import (
    REFRESH_TARGETS,
    MarketDataService,
    get_market_data_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin"])


@router.post("/refresh")
async def refresh(
    target: Optional[str] = Query(None, description=f"One of: {', '.join(REFRESH_TARGETS)}"),
    service: MarketDataService = Depends(get_market_data_service),
    cache: BaseCache = Depends(get_cache),
):
    """
    With ``target``: recompute that endpoint's default view synchronously and
    return it. Without: drop every cached response.
    """
    if target is None:
        deleted = await cache.clear()
        logger.info("Cache cleared on request: %d entries", deleted)
        return CacheClearResponse(
            success=True, message="All cache cleared", deleted_count=deleted
        )

    if target not in REFRESH_TARGETS:
        raise HTTPException(status_code=400, detail=f"Unknown refresh target {target!r}")
    with upstream_errors(f"refresh {target}"):
        result = await service.refresh(target)
    return ApiResponse.from_cached(result)


@router.get("/admin/cache/stats")
async def cache_stats(
    service: MarketDataService = Depends(get_market_data_service),
    cache: BaseCache = Depends(get_cache),
):
    return {
        "cache": await cache.get_stats(),
        "providers": service.get_stats(),
        "rate_limiters": get_all_limiter_stats(),
    }


@router.post("/admin/cache/cleanup", response_model=CacheCleanupResponse)
async def cache_cleanup(cache: BaseCache = Depends(get_cache)):
    """Delete expired cache entries."""
    deleted = await cache.clear_expired()
    logger.info("Cache cleanup complete: %d expired entries removed", deleted)
    return CacheCleanupResponse(success=True, deleted_count=deleted)
