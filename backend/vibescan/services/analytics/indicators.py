"""
Market indicators over daily average prices: RSI, momentum, liquidity
score and the trend labels derived from them.
"""

from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Iterable, Optional, Sequence

from vibescan.services.analytics.daily import utc_date
from vibescan.services.analytics.floor import PricedTrade

RSI_PERIOD = 14
MOMENTUM_WINDOW = 7
MOMENTUM_CLAMP = 100.0

SUBSCORE_CAP = 33.3
REFERENCE_LISTING_COUNT = 50
REFERENCE_DAILY_SALES = 10
SPREAD_PENALTY = 10

VOLUME_TREND_THRESHOLD = 0.15


def calculate_rsi(prices: Sequence[float], period: int = RSI_PERIOD) -> float:
    """
    RSI over the trailing ``period`` price changes, rounded to 0.1.

    50 (neutral) with fewer than ``period + 1`` samples; 100 when the
    window has no losses.
    """
    if len(prices) < period + 1:
        return 50.0

    changes = [prices[i] - prices[i - 1] for i in range(1, len(prices))][-period:]
    gains = sum(c for c in changes if c > 0)
    losses = -sum(c for c in changes if c < 0)

    avg_gain = gains / period
    avg_loss = losses / period
    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return round(100 - 100 / (1 + rs), 1)


def calculate_momentum(prices: Sequence[float], window: int = MOMENTUM_WINDOW) -> float:
    """Mean of the last ``window`` samples vs the ``window`` before, in %, clamped to +/-100."""
    if len(prices) < 2:
        return 0.0

    recent = prices[-window:]
    earlier = prices[-2 * window:-window]
    if not recent or not earlier:
        return 0.0

    earlier_avg = sum(earlier) / len(earlier)
    if earlier_avg == 0:
        return 0.0
    recent_avg = sum(recent) / len(recent)

    momentum = (recent_avg - earlier_avg) / earlier_avg * 100
    return round(max(-MOMENTUM_CLAMP, min(MOMENTUM_CLAMP, momentum)), 1)


def calculate_liquidity_score(
    listing_prices: Sequence[float], sales_count: int, days: int
) -> int:
    """
    0-100 score, three sub-scores capped at 33.3 each:

    - listings: active listing count against 50
    - velocity: average daily sales against 10
    - spread: 33.3 minus 10x the relative spread of listing prices
      (a single listing or none counts as spread 1)
    """
    listing_prices = [p for p in listing_prices if p > 0]
    listing_score = min(SUBSCORE_CAP, len(listing_prices) / REFERENCE_LISTING_COUNT * SUBSCORE_CAP)

    sales_per_day = sales_count / days if days > 0 else 0.0
    velocity_score = min(SUBSCORE_CAP, sales_per_day / REFERENCE_DAILY_SALES * SUBSCORE_CAP)

    if len(listing_prices) > 1:
        low = min(listing_prices)
        spread = (max(listing_prices) - low) / low
    else:
        spread = 1.0
    spread_score = max(0.0, SUBSCORE_CAP - spread * SPREAD_PENALTY)

    return round(listing_score + velocity_score + spread_score)


def volume_trend(daily_volumes: Sequence[float], window: int = MOMENTUM_WINDOW) -> str:
    recent = sum(daily_volumes[-window:])
    earlier = sum(daily_volumes[-2 * window:-window])
    change = (recent - earlier) / earlier if earlier > 0 else 0.0

    if change > VOLUME_TREND_THRESHOLD:
        return "increasing"
    if change < -VOLUME_TREND_THRESHOLD:
        return "decreasing"
    return "stable"


def price_trend(rsi: float, momentum: float) -> str:
    if rsi > 60 and momentum > 5:
        return "bullish"
    if rsi < 40 and momentum < -5:
        return "bearish"
    return "neutral"


def daily_series(sales: Iterable[PricedTrade]) -> tuple[list[str], list[float], list[float]]:
    """(dates, average prices, volumes) per UTC day with priced sales, oldest first."""
    by_date: dict[str, list[float]] = defaultdict(list)
    for sale in sales:
        if sale.price_eth > 0:
            by_date[utc_date(sale.timestamp)].append(sale.price_eth)

    dates = sorted(by_date)
    averages = [sum(by_date[d]) / len(by_date[d]) for d in dates]
    volumes = [sum(by_date[d]) for d in dates]
    return dates, averages, volumes


@dataclass
class MarketIndicators:
    rsi: float
    momentum: float
    liquidity_score: int
    volume_trend: str
    price_trend: str

    def to_dict(self) -> dict:
        return asdict(self)


def build_market_indicators(
    sales: Sequence[PricedTrade],
    listing_prices: Sequence[float],
    days: int = 30,
    sales_count: Optional[int] = None,
) -> MarketIndicators:
    if not sales:
        return MarketIndicators(
            rsi=50.0, momentum=0.0, liquidity_score=0, volume_trend="stable", price_trend="neutral"
        )

    _, averages, volumes = daily_series(sales)
    rsi = calculate_rsi(averages)
    momentum = calculate_momentum(averages)
    return MarketIndicators(
        rsi=rsi,
        momentum=momentum,
        liquidity_score=calculate_liquidity_score(
            listing_prices, sales_count if sales_count is not None else len(sales), days
        ),
        volume_trend=volume_trend(volumes),
        price_trend=price_trend(rsi, momentum),
    )
