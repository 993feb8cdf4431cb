"""
Flip detection: consecutive resales of the same token.

FIFO chaining per token, not per-buyer matching: a token sold three
times yields two flips.
"""

from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Iterable, Protocol

SECONDS_PER_DAY = 86400


class TokenTrade(Protocol):
    token_id: str
    buyer: str
    timestamp: int
    price_eth: float


@dataclass(frozen=True)
class FlipRecord:
    token_id: str
    buy_price: float
    sell_price: float
    profit: float
    profit_pct: float
    holding_days: float
    buyer: str
    bought_at: int
    sold_at: int

    def to_dict(self) -> dict:
        return asdict(self)


def detect_flips(sales: Iterable[TokenTrade]) -> list[FlipRecord]:
    """Every adjacent pair of a token's time-sorted sales is one flip."""
    by_token: dict[str, list[TokenTrade]] = defaultdict(list)
    for sale in sales:
        if sale.token_id:
            by_token[sale.token_id].append(sale)

    flips = []
    for token_id, history in by_token.items():
        history.sort(key=lambda s: s.timestamp)
        for buy, sell in zip(history, history[1:]):
            profit = sell.price_eth - buy.price_eth
            flips.append(
                FlipRecord(
                    token_id=token_id,
                    buy_price=buy.price_eth,
                    sell_price=sell.price_eth,
                    profit=profit,
                    profit_pct=profit / buy.price_eth * 100 if buy.price_eth > 0 else 0.0,
                    holding_days=(sell.timestamp - buy.timestamp) / SECONDS_PER_DAY,
                    buyer=buy.buyer,
                    bought_at=buy.timestamp,
                    sold_at=sell.timestamp,
                )
            )
    return flips
