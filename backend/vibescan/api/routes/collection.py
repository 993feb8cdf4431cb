"""
Collection-level endpoints.
"""

from fastapi import APIRouter, Depends

from vibescan.api.errors import upstream_errors
from vibescan.schemas.responses import ApiResponse
from vibescan.services.market_data import MarketDataService, get_market_data_service

router = APIRouter(prefix="/collection", tags=["collection"])


@router.get("/stats", response_model=ApiResponse)
async def get_collection_stats(
    service: MarketDataService = Depends(get_market_data_service),
):
    """
    Floor, all-time volume and sales, owners, market cap and 24h activity.

    All-time totals come from the marketplace; 24h figures from reconciled
    on-chain sales of the last 30 days.
    """
    with upstream_errors("collection stats"):
        result = await service.get_collection_stats()
    return ApiResponse.from_cached(result)


@router.get("/holders", response_model=ApiResponse)
async def get_holders(service: MarketDataService = Depends(get_market_data_service)):
    """Holder count and supply share by holder rank, from a full transfer replay."""
    with upstream_errors("holders"):
        result = await service.get_holders()
    return ApiResponse.from_cached(result)
