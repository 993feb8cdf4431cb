"""
Marketplace reader (OpenSea) and ETH price feed (CoinGecko).
"""

from vibescan.services.marketplace.coingecko import CoinGeckoClient, EthPrice
from vibescan.services.marketplace.opensea import (
    EventsPage,
    Listing,
    Offer,
    OpenSeaClient,
    SaleEvent,
    parse_listing,
    parse_offer,
    parse_sale_event,
)

__all__ = [
    "CoinGeckoClient",
    "EthPrice",
    "EventsPage",
    "Listing",
    "Offer",
    "OpenSeaClient",
    "SaleEvent",
    "parse_listing",
    "parse_offer",
    "parse_sale_event",
]
