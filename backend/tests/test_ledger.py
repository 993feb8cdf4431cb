import random

from chain_fixtures import ALICE, BOB, CAROL, STRATEGY
from vibescan.services.chain import ZERO_ADDRESS, Transfer
from vibescan.services.ledger import (
    LifecycleStatus,
    attach_prices,
    holder_distribution,
    replay,
    summarize_lifecycles,
    top_holders,
    whale_concentration,
)

DAY = 86400
T0 = 1_700_000_000


def transfer(block, frm, to, token="1", index=0, ts=None, tx=None):
    return Transfer(
        tx_hash=tx or f"0x{block:04x}{index:04x}",
        block_number=block,
        timestamp=ts if ts is not None else T0 + block,
        from_addr=frm,
        to_addr=to,
        token_id=token,
        log_index=index,
    )


HISTORY = [
    transfer(1, ZERO_ADDRESS, ALICE, "1"),
    transfer(1, ZERO_ADDRESS, ALICE, "2", index=1),
    transfer(2, ALICE, BOB, "1"),
    transfer(3, ZERO_ADDRESS, CAROL, "3"),
    transfer(4, CAROL, ZERO_ADDRESS, "3"),
]


def test_replay_tracks_current_holders():
    snapshot = replay(HISTORY)

    assert dict(snapshot.holder_of) == {"1": BOB, "2": ALICE}
    assert dict(snapshot.holdings) == {ALICE: frozenset({"2"}), BOB: frozenset({"1"})}
    assert snapshot.holder_count == 2
    assert snapshot.transfer_count == 5
    assert ZERO_ADDRESS not in snapshot.holdings


def test_replay_is_deterministic_regardless_of_input_order():
    shuffled = HISTORY[:]
    random.Random(7).shuffle(shuffled)

    first, second = replay(HISTORY), replay(shuffled)
    assert dict(first.holder_of) == dict(second.holder_of)
    assert dict(first.holdings) == dict(second.holdings)


def test_held_tokens_are_a_subset_of_tokens_seen():
    snapshot = replay(HISTORY)
    seen = {t.token_id for t in HISTORY}
    held = set().union(*snapshot.holdings.values())
    assert held <= seen
    assert held == set(snapshot.holder_of)


def test_missing_transfer_does_not_leave_token_with_previous_holder():
    full = [
        transfer(1, ZERO_ADDRESS, ALICE),
        transfer(2, ALICE, BOB),
        transfer(3, BOB, CAROL),
    ]
    partial = [full[0], full[2]]

    snapshot = replay(partial)

    assert snapshot.holder_count <= replay(full).holder_count
    assert dict(snapshot.holdings) == {CAROL: frozenset({"1"})}
    assert snapshot.holder_of["1"] == CAROL


def test_strategy_lifecycle_buy_sell_rebuy():
    history = [
        transfer(10, ALICE, STRATEGY, "7", ts=T0, tx="0xbuy1"),
        transfer(20, STRATEGY, BOB, "7", ts=T0 + 2 * DAY, tx="0xsell1"),
        transfer(30, BOB, STRATEGY, "7", ts=T0 + 5 * DAY, tx="0xbuy2"),
    ]
    snapshot = replay(history, strategy_address=STRATEGY.upper().replace("0X", "0x"), now=T0 + 6 * DAY)

    [previous] = snapshot.previous_lifecycles
    assert previous.status == LifecycleStatus.SOLD
    assert previous.sale.buyer == BOB
    assert previous.hold_days == 2.0

    current = snapshot.history_of["7"]
    assert current.status == LifecycleStatus.HELD
    assert current.purchase.tx_hash == "0xbuy2"
    assert current.hold_days == 1.0


def test_sale_without_observed_purchase_is_ignored():
    snapshot = replay([transfer(1, STRATEGY, BOB, "9")], strategy_address=STRATEGY)
    assert dict(snapshot.history_of) == {}


def test_attach_prices_and_summary():
    history = [
        transfer(1, ALICE, STRATEGY, "1", ts=T0, tx="0xA1"),
        transfer(2, STRATEGY, BOB, "1", ts=T0 + DAY, tx="0xa2"),
        transfer(3, ALICE, STRATEGY, "2", ts=T0 + DAY, tx="0xa3"),
    ]
    snapshot = replay(history, strategy_address=STRATEGY, now=T0 + 3 * DAY)
    priced = attach_prices(
        snapshot.history_of.values(), {"0xa1": 1.0, "0xa2": 1.5, "0xa3": 2.0}
    )

    summary = summarize_lifecycles(priced)
    assert summary.currently_held == 1
    assert summary.total_sold == 1
    assert summary.total_invested == 3.0
    assert summary.total_proceeds == 1.5
    assert summary.average_hold_days == 1.5
    assert summary.roi_pct == -50.0


def twelve_holders():
    holders = [f"0x{i:040x}" for i in range(1, 13)]
    history = [transfer(i, ZERO_ADDRESS, h, str(i)) for i, h in enumerate(holders, start=1)]
    # The first holder gets two more tokens
    history += [transfer(20, ZERO_ADDRESS, holders[0], "100"), transfer(21, ZERO_ADDRESS, holders[0], "101")]
    return holders, replay(history)


def test_holder_distribution_by_holding_size():
    _, snapshot = twelve_holders()

    buckets = holder_distribution(snapshot, total_supply=14)

    assert [b["label"] for b in buckets] == ["1", "2-5", "6-10", "11-25", "26+"]
    assert [b["holders"] for b in buckets] == [11, 1, 0, 0, 0]
    assert [b["tokens"] for b in buckets] == [11, 3, 0, 0, 0]
    assert [b["percentage"] for b in buckets] == [78.57, 21.43, 0.0, 0.0, 0.0]
    assert buckets[-1]["max"] is None


def test_top_holders_and_whale_concentration():
    holders, snapshot = twelve_holders()

    top = top_holders(snapshot, total_supply=14, limit=3)
    whales = whale_concentration(snapshot, total_supply=14)

    assert top[0] == {"address": holders[0], "count": 3, "percentage": 21.43}
    assert [h["address"] for h in top[1:]] == holders[1:3]
    assert whales == {"top10": 85.71, "top25": 100.0, "top50": 100.0}


def test_distribution_without_supply():
    _, snapshot = twelve_holders()
    assert all(b["percentage"] == 0.0 for b in holder_distribution(snapshot, total_supply=0))
