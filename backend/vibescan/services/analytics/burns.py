"""
Burn-cycle linkage: pair strategy NFT sales with the token burns that
followed them.

Greedy nearest-after matching: sales are visited oldest first and each
takes the earliest unused burn within (0, 7 days] after it. This is not an
optimal assignment and does not trace which proceeds funded which burn.
Burns left over become standalone cycles.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from vibescan.services.chain.logs import BurnTransaction
from vibescan.services.ledger import LifecycleStatus, TokenLifecycle

BURN_MATCH_WINDOW_SEC = 7 * 86400
# Proceeds are assumed to be fully spent on buy-and-burn
ASSUMED_EFFICIENCY = 100.0


@dataclass(frozen=True)
class SaleRef:
    token_id: str
    sale_price: float
    sale_tx: str
    timestamp: int


@dataclass(frozen=True)
class BurnCycle:
    sale: Optional[SaleRef]
    proceeds_eth: float
    tokens_burned: float
    burn_tx: str
    burn_timestamp: int
    burn_block: int
    efficiency: float
    burn_rate: float

    def to_dict(self) -> dict:
        return {
            "sale": None if self.sale is None else {
                "token_id": self.sale.token_id,
                "sale_price": self.sale.sale_price,
                "sale_tx": self.sale.sale_tx,
                "timestamp": self.sale.timestamp,
            },
            "proceeds_eth": self.proceeds_eth,
            "tokens_burned": self.tokens_burned,
            "burn_tx": self.burn_tx,
            "burn_timestamp": self.burn_timestamp,
            "burn_block": self.burn_block,
            "efficiency": self.efficiency,
            "burn_rate": self.burn_rate,
        }


def sales_from_lifecycles(lifecycles: Iterable[TokenLifecycle]) -> list[SaleRef]:
    """Priced strategy sales, the left-hand side of the linkage."""
    return [
        SaleRef(
            token_id=lc.token_id,
            sale_price=lc.sale.price_eth,
            sale_tx=lc.sale.tx_hash,
            timestamp=lc.sale.timestamp,
        )
        for lc in lifecycles
        if lc.status == LifecycleStatus.SOLD and lc.sale.price_eth
    ]


def link_burn_cycles(
    sales: Iterable[SaleRef], burns: Iterable[BurnTransaction]
) -> list[BurnCycle]:
    """Linked and standalone cycles, newest burn first."""
    ordered_sales = sorted((s for s in sales if s.sale_price > 0), key=lambda s: s.timestamp)
    ordered_burns = sorted(burns, key=lambda b: b.timestamp)
    used: set[int] = set()
    cycles: list[BurnCycle] = []

    for sale in ordered_sales:
        for i, burn in enumerate(ordered_burns):
            if i in used:
                continue
            delta = burn.timestamp - sale.timestamp
            if delta > BURN_MATCH_WINDOW_SEC:
                break
            if delta <= 0:
                continue
            used.add(i)
            cycles.append(
                BurnCycle(
                    sale=sale,
                    proceeds_eth=sale.sale_price,
                    tokens_burned=burn.amount,
                    burn_tx=burn.tx_hash,
                    burn_timestamp=burn.timestamp,
                    burn_block=burn.block_number,
                    efficiency=ASSUMED_EFFICIENCY,
                    burn_rate=burn.amount / sale.sale_price,
                )
            )
            break

    for i, burn in enumerate(ordered_burns):
        if i not in used:
            cycles.append(
                BurnCycle(
                    sale=None,
                    proceeds_eth=0.0,
                    tokens_burned=burn.amount,
                    burn_tx=burn.tx_hash,
                    burn_timestamp=burn.timestamp,
                    burn_block=burn.block_number,
                    efficiency=ASSUMED_EFFICIENCY,
                    burn_rate=0.0,
                )
            )

    cycles.sort(key=lambda c: c.burn_timestamp, reverse=True)
    return cycles


def summarize_burn_cycles(cycles: list[BurnCycle]) -> dict:
    with_sales = sum(1 for c in cycles if c.sale is not None)
    return {
        "total_burned": sum(c.tokens_burned for c in cycles),
        "total_proceeds": sum(c.proceeds_eth for c in cycles),
        "average_efficiency": (
            sum(c.efficiency for c in cycles) / len(cycles) if cycles else 0.0
        ),
        "cycles_with_sales": with_sales,
        "standalone_burns": len(cycles) - with_sales,
    }
