"""
Trader behaviour over a window of sales.
"""

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Iterable, Protocol

from vibescan.services.analytics.daily import utc_date
from vibescan.services.analytics.flips import FlipRecord, detect_flips

TOP_TRADERS = 10
TOP_FLIPS = 50


class Trade(Protocol):
    token_id: str
    buyer: str
    seller: str
    timestamp: int
    price_eth: float


@dataclass
class DailyTraderStat:
    date: str
    unique_buyers: int
    unique_sellers: int
    new_buyers: int
    repeat_buyers: int
    total_trades: int


@dataclass
class TraderActivity:
    address: str
    count: int
    volume: float


@dataclass
class TraderAnalysis:
    daily_stats: list[DailyTraderStat] = field(default_factory=list)
    flips: list[FlipRecord] = field(default_factory=list)
    top_buyers: list[TraderActivity] = field(default_factory=list)
    top_sellers: list[TraderActivity] = field(default_factory=list)
    repeat_buyer_rate: float = 0.0
    avg_holding_period: float = 0.0

    def to_dict(self) -> dict:
        return {
            "daily_stats": [asdict(d) for d in self.daily_stats],
            "flips": [f.to_dict() for f in self.flips],
            "top_buyers": [asdict(t) for t in self.top_buyers],
            "top_sellers": [asdict(t) for t in self.top_sellers],
            "repeat_buyer_rate": self.repeat_buyer_rate,
            "avg_holding_period": self.avg_holding_period,
        }


def _top(activity: dict[str, TraderActivity]) -> list[TraderActivity]:
    return sorted(activity.values(), key=lambda a: a.count, reverse=True)[:TOP_TRADERS]


def analyze_traders(sales: Iterable[Trade]) -> TraderAnalysis:
    """
    Daily unique buyers and sellers, new vs repeat buyers, most active
    addresses, repeat-buyer rate (%) and flips.

    A buyer is "new" on the first date it appears in the window; dates are
    walked oldest first.
    """
    sales = list(sales)
    if not sales:
        return TraderAnalysis()

    buyers: dict[str, TraderActivity] = {}
    sellers: dict[str, TraderActivity] = {}
    by_date: dict[str, list[Trade]] = defaultdict(list)

    for sale in sales:
        by_date[utc_date(sale.timestamp)].append(sale)
        if sale.buyer:
            entry = buyers.setdefault(sale.buyer, TraderActivity(sale.buyer, 0, 0.0))
            entry.count += 1
            entry.volume += sale.price_eth
        if sale.seller:
            entry = sellers.setdefault(sale.seller, TraderActivity(sale.seller, 0, 0.0))
            entry.count += 1
            entry.volume += sale.price_eth

    daily_stats = []
    seen: set[str] = set()
    for date in sorted(by_date):
        day = by_date[date]
        day_buyers = {s.buyer for s in day if s.buyer}
        day_sellers = {s.seller for s in day if s.seller}
        new_buyers = day_buyers - seen
        seen |= new_buyers
        daily_stats.append(
            DailyTraderStat(
                date=date,
                unique_buyers=len(day_buyers),
                unique_sellers=len(day_sellers),
                new_buyers=len(new_buyers),
                repeat_buyers=len(day_buyers) - len(new_buyers),
                total_trades=len(day),
            )
        )

    flips = detect_flips(sales)
    repeat = sum(1 for b in buyers.values() if b.count > 1)
    avg_holding = sum(f.holding_days for f in flips) / len(flips) if flips else 0.0

    return TraderAnalysis(
        daily_stats=daily_stats,
        flips=sorted(flips, key=lambda f: f.profit_pct, reverse=True)[:TOP_FLIPS],
        top_buyers=_top(buyers),
        top_sellers=_top(sellers),
        repeat_buyer_rate=round(repeat / len(buyers) * 100, 1) if buyers else 0.0,
        avg_holding_period=round(avg_holding, 1),
    )
