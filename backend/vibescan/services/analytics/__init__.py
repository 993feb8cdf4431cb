"""
Pure analytics over enriched sales, listings, offers, lifecycles and burns.
"""

from vibescan.services.analytics.burns import (
    BurnCycle,
    SaleRef,
    link_burn_cycles,
    sales_from_lifecycles,
    summarize_burn_cycles,
)
from vibescan.services.analytics.daily import DailyStat, aggregate_daily_stats, utc_date
from vibescan.services.analytics.flips import FlipRecord, detect_flips
from vibescan.services.analytics.floor import estimate_floor
from vibescan.services.analytics.indicators import (
    MarketIndicators,
    build_market_indicators,
    calculate_liquidity_score,
    calculate_momentum,
    calculate_rsi,
    price_trend,
    volume_trend,
)
from vibescan.services.analytics.market import build_collection_stats, build_market_depth
from vibescan.services.analytics.traders import TraderAnalysis, analyze_traders

__all__ = [
    "BurnCycle",
    "DailyStat",
    "FlipRecord",
    "MarketIndicators",
    "SaleRef",
    "TraderAnalysis",
    "aggregate_daily_stats",
    "analyze_traders",
    "build_collection_stats",
    "build_market_depth",
    "build_market_indicators",
    "calculate_liquidity_score",
    "calculate_momentum",
    "calculate_rsi",
    "detect_flips",
    "estimate_floor",
    "link_burn_cycles",
    "price_trend",
    "sales_from_lifecycles",
    "summarize_burn_cycles",
    "utc_date",
    "volume_trend",
]
