"""
Derived market analytics.
"""

from fastapi import APIRouter, Depends, Query

from vibescan.api.errors import upstream_errors
from vibescan.schemas.responses import ApiResponse
from vibescan.services.market_data import MarketDataService, get_market_data_service

router = APIRouter(tags=["analytics"])


@router.get("/price-history", response_model=ApiResponse)
async def get_price_history(
    days: int = Query(30, ge=1, le=365),
    service: MarketDataService = Depends(get_market_data_service),
):
    """
    Daily volume, price range, payment-currency split and sales above the
    floor estimate, one row per UTC date.
    """
    with upstream_errors("price history"):
        result = await service.get_price_history(days)
    return ApiResponse.from_cached(result)


@router.get("/trader-analysis", response_model=ApiResponse)
async def get_trader_analysis(
    days: int = Query(30, ge=1, le=90),
    service: MarketDataService = Depends(get_market_data_service),
):
    with upstream_errors("trader analysis"):
        result = await service.get_trader_analysis(days)
    return ApiResponse.from_cached(result)


@router.get("/market-indicators", response_model=ApiResponse)
async def get_market_indicators(
    service: MarketDataService = Depends(get_market_data_service),
):
    """RSI, momentum, liquidity score and trends over the last 30 days."""
    with upstream_errors("market indicators"):
        result = await service.get_market_indicators()
    return ApiResponse.from_cached(result)


@router.get("/market-depth", response_model=ApiResponse)
async def get_market_depth(service: MarketDataService = Depends(get_market_data_service)):
    with upstream_errors("market depth"):
        result = await service.get_market_depth()
    return ApiResponse.from_cached(result)
