"""
Collection-level stats and order-book depth.
"""

import math
import time
from collections import Counter
from typing import Iterable, Optional

from vibescan.services.analytics.floor import PricedTrade
from vibescan.services.marketplace.opensea import Listing, Offer

SECONDS_PER_DAY = 86400
DEPTH_BUCKET_ETH = 0.01


def build_collection_stats(
    marketplace_totals: dict,
    recent_sales: Iterable[PricedTrade],
    total_supply: int,
    eth_price_usd: float,
    now: Optional[float] = None,
    holder_count: Optional[int] = None,
) -> dict:
    """
    All-time totals come from the marketplace; 24h figures from our own
    recent enriched sales. Market cap is floor x supply.
    """
    now = now if now is not None else time.time()
    one_day_ago = now - SECONDS_PER_DAY
    two_days_ago = now - 2 * SECONDS_PER_DAY

    floor_price = float(marketplace_totals.get("floor_price") or 0)
    total_volume = float(marketplace_totals.get("volume") or 0)
    total_sales = int(marketplace_totals.get("sales") or 0)
    num_owners = int(marketplace_totals.get("num_owners") or 0)

    recent = list(recent_sales)
    last_24h = [s for s in recent if s.timestamp >= one_day_ago]
    previous_24h = [s for s in recent if two_days_ago <= s.timestamp < one_day_ago]
    volume_24h = sum(s.price_eth for s in last_24h)
    volume_prev_24h = sum(s.price_eth for s in previous_24h)

    avg_price = total_volume / total_sales if total_sales else 0.0
    market_cap = floor_price * total_supply

    return {
        "floor_price": floor_price,
        "floor_price_usd": floor_price * eth_price_usd,
        "total_volume": total_volume,
        "total_volume_usd": total_volume * eth_price_usd,
        "total_sales": total_sales,
        "num_owners": num_owners,
        "holder_count": holder_count,
        "total_supply": total_supply,
        "market_cap": market_cap,
        "market_cap_usd": market_cap * eth_price_usd,
        "avg_price": avg_price,
        "avg_price_usd": avg_price * eth_price_usd,
        "volume_24h": volume_24h,
        "volume_24h_usd": volume_24h * eth_price_usd,
        "volume_24h_change": (
            (volume_24h - volume_prev_24h) / volume_prev_24h * 100 if volume_prev_24h else 0.0
        ),
        "sales_24h": len(last_24h),
        "eth_price_usd": eth_price_usd,
    }


def price_bucket(price: float) -> float:
    return round(math.floor(round(price / DEPTH_BUCKET_ETH, 9)) * DEPTH_BUCKET_ETH, 2)


def build_market_depth(listings: Iterable[Listing], offers: Iterable[Offer]) -> dict:
    """
    Listing and offer depth in 0.01 ETH buckets. Offers count each unit of
    ``quantity`` at the per-NFT price. Spread is lowest ask minus highest bid.
    """
    listing_prices = sorted(listing.price_eth for listing in listings if listing.price_eth > 0)
    listing_buckets = Counter(price_bucket(p) for p in listing_prices)

    offer_buckets: Counter = Counter()
    for offer in offers:
        per_nft = offer.price_per_nft
        if per_nft > 0 and offer.quantity > 0:
            offer_buckets[price_bucket(per_nft)] += offer.quantity

    listing_depth = [{"price": p, "depth": d} for p, d in sorted(listing_buckets.items())]
    offer_depth = [
        {"price": p, "depth": d} for p, d in sorted(offer_buckets.items(), reverse=True)
    ]

    lowest_listing = listing_prices[0] if listing_prices else 0.0
    highest_offer = offer_depth[0]["price"] if offer_depth else 0.0
    spread = lowest_listing - highest_offer

    return {
        "listings": listing_depth,
        "offers": offer_depth,
        "spread": round(spread, 3),
        "spread_pct": round(spread / highest_offer * 100, 1) if highest_offer > 0 else 0.0,
        "lowest_listing": lowest_listing,
        "highest_offer": highest_offer,
        "total_listing_depth": sum(listing_buckets.values()),
        "total_offer_depth": sum(offer_buckets.values()),
    }
