"""
Ledger replay: rebuild current holders and the strategy's per-token
lifecycle from the full Transfer history.

The replay is a fold over transfers in chain order:

    snapshot = reduce(apply_transfer, sorted(transfers), empty_state)

The accumulator is private to one ``replay`` call and is frozen into an
immutable ``LedgerSnapshot`` at the end. It always runs over the whole
history; there is no incremental patching.
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from functools import reduce
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from vibescan.services.chain.logs import ZERO_ADDRESS, Transfer

SECONDS_PER_DAY = 86400


class LifecycleStatus(str, Enum):
    HELD = "held"
    SOLD = "sold"


@dataclass(frozen=True)
class Purchase:
    timestamp: int
    tx_hash: str
    block_number: int
    price_eth: Optional[float] = None


@dataclass(frozen=True)
class Sale:
    timestamp: int
    tx_hash: str
    block_number: int
    buyer: str
    price_eth: Optional[float] = None


@dataclass(frozen=True)
class TokenLifecycle:
    token_id: str
    purchase: Purchase
    sale: Optional[Sale] = None
    hold_days: float = 0.0

    @property
    def status(self) -> LifecycleStatus:
        return LifecycleStatus.SOLD if self.sale is not None else LifecycleStatus.HELD


@dataclass(frozen=True)
class LedgerSnapshot:
    holder_of: Mapping[str, str]
    holdings: Mapping[str, frozenset]
    history_of: Mapping[str, TokenLifecycle]
    previous_lifecycles: tuple[TokenLifecycle, ...]
    transfer_count: int

    @property
    def holder_count(self) -> int:
        return len(self.holdings)


@dataclass
class _LedgerState:
    holder_of: dict[str, str] = field(default_factory=dict)
    holdings: dict[str, set[str]] = field(default_factory=dict)
    lifecycles: dict[str, TokenLifecycle] = field(default_factory=dict)
    previous: list[TokenLifecycle] = field(default_factory=list)
    count: int = 0


def chain_order(transfers: Iterable[Transfer]) -> list[Transfer]:
    """Block ascending, then log index; equal keys keep input order."""
    return sorted(
        transfers,
        key=lambda t: (t.block_number, t.log_index if t.log_index is not None else 0),
    )


def _release(state: _LedgerState, address: Optional[str], token: str) -> None:
    owned = state.holdings.get(address)
    if owned is not None:
        owned.discard(token)
        if not owned:
            del state.holdings[address]


def _apply_ownership(state: _LedgerState, transfer: Transfer) -> None:
    token = transfer.token_id

    # A token has one holder even when intermediate transfers are missing
    _release(state, state.holder_of.get(token), token)
    if transfer.from_addr != ZERO_ADDRESS:
        _release(state, transfer.from_addr, token)

    if transfer.to_addr != ZERO_ADDRESS:
        state.holdings.setdefault(transfer.to_addr, set()).add(token)
        state.holder_of[token] = transfer.to_addr
    else:
        state.holder_of.pop(token, None)


def _apply_lifecycle(state: _LedgerState, transfer: Transfer, strategy: str) -> None:
    token = transfer.token_id
    current = state.lifecycles.get(token)

    if transfer.to_addr == strategy:
        if current is not None and current.status == LifecycleStatus.HELD:
            return
        if current is not None:
            state.previous.append(current)
        state.lifecycles[token] = TokenLifecycle(
            token_id=token,
            purchase=Purchase(
                timestamp=transfer.timestamp,
                tx_hash=transfer.tx_hash,
                block_number=transfer.block_number,
            ),
        )
    elif transfer.from_addr == strategy:
        # A sale is only meaningful after an observed purchase
        if current is None or current.status == LifecycleStatus.SOLD:
            return
        state.lifecycles[token] = replace(
            current,
            sale=Sale(
                timestamp=transfer.timestamp,
                tx_hash=transfer.tx_hash,
                block_number=transfer.block_number,
                buyer=transfer.to_addr,
            ),
        )


def apply_transfer(
    state: _LedgerState, transfer: Transfer, strategy_address: Optional[str] = None
) -> _LedgerState:
    _apply_ownership(state, transfer)
    if strategy_address:
        _apply_lifecycle(state, transfer, strategy_address)
    state.count += 1
    return state


def _with_hold_days(lifecycle: TokenLifecycle, now: float) -> TokenLifecycle:
    end = lifecycle.sale.timestamp if lifecycle.sale is not None else now
    return replace(lifecycle, hold_days=(end - lifecycle.purchase.timestamp) / SECONDS_PER_DAY)


def replay(
    transfers: Iterable[Transfer],
    strategy_address: Optional[str] = None,
    now: Optional[float] = None,
) -> LedgerSnapshot:
    """
    Replay the complete transfer history.

    Zero-address senders (mints) and receivers (burns) never hold tokens.
    With ``strategy_address`` set, a transfer to it opens a HELD lifecycle
    and a transfer from it closes that lifecycle as SOLD. A purchase after
    a sale starts a new lifecycle; the finished one moves to
    ``previous_lifecycles``.
    """
    strategy = strategy_address.lower() if strategy_address else None
    now = now if now is not None else time.time()

    state = reduce(
        lambda acc, t: apply_transfer(acc, t, strategy),
        chain_order(transfers),
        _LedgerState(),
    )

    return LedgerSnapshot(
        holder_of=MappingProxyType(dict(state.holder_of)),
        holdings=MappingProxyType({a: frozenset(tokens) for a, tokens in state.holdings.items()}),
        history_of=MappingProxyType(
            {token: _with_hold_days(lc, now) for token, lc in state.lifecycles.items()}
        ),
        previous_lifecycles=tuple(_with_hold_days(lc, now) for lc in state.previous),
        transfer_count=state.count,
    )


def attach_prices(
    lifecycles: Iterable[TokenLifecycle], prices_by_tx: Mapping[str, float]
) -> list[TokenLifecycle]:
    """Fill purchase and sale prices from a tx hash -> ETH price map."""
    priced = []
    for lc in lifecycles:
        purchase = replace(lc.purchase, price_eth=prices_by_tx.get(lc.purchase.tx_hash.lower()))
        sale = lc.sale
        if sale is not None:
            sale = replace(sale, price_eth=prices_by_tx.get(sale.tx_hash.lower()))
        priced.append(replace(lc, purchase=purchase, sale=sale))
    return priced


@dataclass
class LifecycleSummary:
    currently_held: int
    total_sold: int
    total_invested: float
    total_proceeds: float
    average_hold_days: float
    roi_pct: float


def summarize_lifecycles(lifecycles: Iterable[TokenLifecycle]) -> LifecycleSummary:
    lifecycles = list(lifecycles)
    sold = [lc for lc in lifecycles if lc.status == LifecycleStatus.SOLD]
    invested = sum(lc.purchase.price_eth or 0.0 for lc in lifecycles)
    proceeds = sum(lc.sale.price_eth or 0.0 for lc in sold)
    return LifecycleSummary(
        currently_held=len(lifecycles) - len(sold),
        total_sold=len(sold),
        total_invested=invested,
        total_proceeds=proceeds,
        average_hold_days=(
            sum(lc.hold_days for lc in lifecycles) / len(lifecycles) if lifecycles else 0.0
        ),
        roi_pct=(proceeds - invested) / invested * 100 if invested > 0 else 0.0,
    )


# (label, min tokens, max tokens); None is open-ended
HOLDER_BUCKETS = (
    ("1", 1, 1),
    ("2-5", 2, 5),
    ("6-10", 6, 10),
    ("11-25", 11, 25),
    ("26+", 26, None),
)
WHALE_TIERS = (10, 25, 50)


def _share(tokens: int, total_supply: int) -> float:
    return round(tokens / total_supply * 100, 2) if total_supply else 0.0


def holder_distribution(snapshot: LedgerSnapshot, total_supply: int) -> list[dict]:
    """Holders grouped by how many tokens they hold, with each group's share of supply."""
    counts = [len(tokens) for tokens in snapshot.holdings.values()]
    buckets = []
    for label, low, high in HOLDER_BUCKETS:
        band = [c for c in counts if c >= low and (high is None or c <= high)]
        buckets.append(
            {
                "label": label,
                "min": low,
                "max": high,
                "holders": len(band),
                "tokens": sum(band),
                "percentage": _share(sum(band), total_supply),
            }
        )
    return buckets


def top_holders(snapshot: LedgerSnapshot, total_supply: int, limit: int = 10) -> list[dict]:
    ranked = sorted(snapshot.holdings.items(), key=lambda item: (-len(item[1]), item[0]))
    return [
        {"address": address, "count": len(tokens), "percentage": _share(len(tokens), total_supply)}
        for address, tokens in ranked[:limit]
    ]


def whale_concentration(snapshot: LedgerSnapshot, total_supply: int) -> dict[str, float]:
    """Share of supply held by the largest 10, 25 and 50 holders."""
    ranked = sorted((len(tokens) for tokens in snapshot.holdings.values()), reverse=True)
    return {f"top{n}": _share(sum(ranked[:n]), total_supply) for n in WHALE_TIERS}
