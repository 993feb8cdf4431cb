"""
Recent sales: transfers reconciled with marketplace prices.
"""

from fastapi import APIRouter, Depends, Query

from vibescan.api.errors import upstream_errors
from vibescan.schemas.responses import ApiResponse, EventsPage
from vibescan.services.market_data import MarketDataService, get_market_data_service

router = APIRouter(tags=["events"])


@router.get("/events", response_model=ApiResponse)
async def get_events(
    days: int = Query(30, ge=1, le=365, description="Look-back window in days"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: MarketDataService = Depends(get_market_data_service),
):
    """
    Priced sales, newest first. The whole window is computed and cached once;
    ``limit`` and ``offset`` only slice the cached list.
    """
    with upstream_errors("events"):
        result = await service.get_events(days)

    sales = result.value["sales"]
    page = EventsPage(
        days=days,
        total=len(sales),
        limit=limit,
        offset=offset,
        sales=sales[offset : offset + limit],
        unpriced_transfers=result.value.get("unpriced_transfers", 0),
        eth_price_usd=result.value.get("eth_price_usd"),
    )
    return ApiResponse.from_cached(result, data=page.model_dump())
