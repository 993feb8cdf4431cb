"""
Floor price estimate from recent trades.
"""

import math
import time
from typing import Iterable, Optional, Protocol

SECONDS_PER_DAY = 86400
FLOOR_WINDOW_DAYS = 7
FLOOR_PERCENTILE = 0.10


class PricedTrade(Protocol):
    timestamp: int
    price_eth: float


def estimate_floor(sales: Iterable[PricedTrade], now: Optional[float] = None) -> float:
    """
    10th-percentile price of the last 7 days of sales, picked by sorted
    index ``floor(n * 0.1)``. With no sale in the window, the lowest price
    ever seen; with no sales at all, 0.
    """
    now = now if now is not None else time.time()
    cutoff = now - FLOOR_WINDOW_DAYS * SECONDS_PER_DAY

    priced = [s for s in sales if s.price_eth > 0]
    recent = sorted(s.price_eth for s in priced if s.timestamp >= cutoff)
    if recent:
        return recent[math.floor(len(recent) * FLOOR_PERCENTILE)]
    return min((s.price_eth for s in priced), default=0.0)
