"""
Strategy contract endpoints: holdings, burn cycles and ledger sync.
"""

import logging

from fastapi import APIRouter, Depends, Query

from vibescan.api.errors import upstream_errors
from vibescan.schemas.responses import ApiResponse, SyncStatusResponse
from vibescan.services.market_data import MarketDataService, get_market_data_service
from vibescan.services.scheduler import get_continuous_syncer
from vibescan.services.strategy_sync import StrategySyncService, get_strategy_sync

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/strategy", tags=["strategy"])


@router.get("/holdings", response_model=ApiResponse)
async def get_holdings(service: MarketDataService = Depends(get_market_data_service)):
    """Tokens the strategy holds and has sold, with purchase/sale prices where known."""
    with upstream_errors("strategy holdings"):
        result = await service.get_strategy_holdings()
    return ApiResponse.from_cached(result)


@router.get("/burn-cycles", response_model=ApiResponse)
async def get_burn_cycles(
    days: int = Query(30, ge=1, le=365),
    service: MarketDataService = Depends(get_market_data_service),
):
    """
    Strategy sales paired with the token burn that followed within 7 days.
    Burns with no preceding sale are listed as standalone cycles.
    """
    with upstream_errors("burn cycles"):
        result = await service.get_burn_cycles(days)
    return ApiResponse.from_cached(result)


@router.get("/sync", response_model=SyncStatusResponse)
async def get_sync_status(sync: StrategySyncService = Depends(get_strategy_sync)):
    status = await sync.get_status()
    return SyncStatusResponse(**status, scheduler=get_continuous_syncer().get_stats())


@router.post("/sync")
async def run_sync(sync: StrategySyncService = Depends(get_strategy_sync)):
    """Run an incremental ledger sync now and wait for it."""
    with upstream_errors("strategy sync"):
        result = await sync.sync()
    return result.to_dict()
