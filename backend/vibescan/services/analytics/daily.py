"""
Per-UTC-day rollups of enriched sales.
"""

import math
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from vibescan.services.enrichment import CurrencyKind, EnrichedSale

PREMIUM_TIERS = (1.10, 1.25, 1.50)


def utc_date(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")


def at_least(price: float, threshold: float) -> bool:
    """``price >= threshold``, treating float rounding noise as equal."""
    return price >= threshold or math.isclose(price, threshold, rel_tol=1e-9)


@dataclass
class DailyStat:
    date: str
    volume: float
    volume_usd: float
    sales_count: int
    min_price: float
    max_price: float
    avg_price: float
    floor_price: float
    sales_above_10pct: int
    sales_above_25pct: int
    sales_above_50pct: int
    eth_count: int = 0
    weth_count: int = 0
    other_count: int = 0
    eth_volume: float = 0.0
    weth_volume: float = 0.0
    other_volume: float = 0.0
    sale_prices: list[float] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def aggregate_daily_stats(
    sales: Iterable[EnrichedSale], floor_price: float, eth_price_usd: Optional[float] = None
) -> list[DailyStat]:
    """
    One row per UTC date, oldest first.

    Premium tiers count sales at or above 110%, 125% and 150% of
    ``floor_price``; a sale at exactly 1.10 x floor is in the first tier
    only. ``eth_price_usd`` is used for days whose sales carry no USD price.
    """
    by_date: dict[str, list[EnrichedSale]] = defaultdict(list)
    for sale in sales:
        by_date[utc_date(sale.timestamp)].append(sale)

    stats = []
    for date in sorted(by_date):
        day = by_date[date]
        prices = [s.price_eth for s in day]
        volume = sum(prices)

        volume_usd = sum(s.price_usd for s in day if s.price_usd is not None)
        if not volume_usd and eth_price_usd:
            volume_usd = volume * eth_price_usd

        tiers = [
            sum(1 for p in prices if floor_price > 0 and at_least(p, floor_price * tier))
            for tier in PREMIUM_TIERS
        ]

        stat = DailyStat(
            date=date,
            volume=volume,
            volume_usd=volume_usd,
            sales_count=len(day),
            min_price=min(prices),
            max_price=max(prices),
            avg_price=volume / len(day),
            floor_price=floor_price,
            sales_above_10pct=tiers[0],
            sales_above_25pct=tiers[1],
            sales_above_50pct=tiers[2],
            sale_prices=prices,
        )
        for s in day:
            if s.currency_kind == CurrencyKind.NATIVE:
                stat.eth_count += 1
                stat.eth_volume += s.price_eth
            elif s.currency_kind == CurrencyKind.WRAPPED:
                stat.weth_count += 1
                stat.weth_volume += s.price_eth
            else:
                stat.other_count += 1
                stat.other_volume += s.price_eth
        stats.append(stat)
    return stats
