from chain_fixtures import ALICE, BOB, CAROL
from vibescan.services.analytics import (
    aggregate_daily_stats,
    analyze_traders,
    build_collection_stats,
    build_market_depth,
    build_market_indicators,
    calculate_liquidity_score,
    calculate_momentum,
    calculate_rsi,
    detect_flips,
    estimate_floor,
    link_burn_cycles,
    price_trend,
    summarize_burn_cycles,
    volume_trend,
)
from vibescan.services.analytics.burns import SaleRef
from vibescan.services.chain import BurnTransaction
from vibescan.services.enrichment import CurrencyKind, EnrichedSale
from vibescan.services.marketplace import Listing, Offer

DAY = 86400
# 2023-11-14 00:00:00 UTC
T0 = 1_699_920_000


def sale(token="1", ts=T0, price=1.0, buyer=BOB, seller=ALICE, kind=CurrencyKind.NATIVE, usd=None):
    return EnrichedSale(
        tx_hash=f"0x{token}{ts}",
        token_id=token,
        block_number=1,
        timestamp=ts,
        seller=seller,
        buyer=buyer,
        price_eth=price,
        price_usd=usd,
        currency_kind=kind,
        currency_symbol={"NATIVE": "ETH", "WRAPPED": "WETH"}.get(kind.value, "USDC"),
        marketplace_id="opensea",
    )


# ── flips ────────────────────────────────────────────────────────────────


def test_three_sales_of_one_token_make_two_flips():
    sales = [sale(ts=T0 + 3 * DAY, price=12), sale(ts=T0, price=10), sale(ts=T0 + DAY, price=15)]

    flips = detect_flips(sales)

    assert [(f.buy_price, f.sell_price) for f in flips] == [(10, 15), (15, 12)]
    assert [f.profit for f in flips] == [5, -3]
    assert [f.profit_pct for f in flips] == [50.0, -20.0]
    assert [f.holding_days for f in flips] == [1.0, 2.0]


def test_single_sales_are_not_flips():
    assert detect_flips([sale(token="1"), sale(token="2")]) == []


# ── indicators ───────────────────────────────────────────────────────────


def test_rsi_edges():
    assert calculate_rsi([1.0] * 14) == 50.0
    assert calculate_rsi([float(i) for i in range(1, 16)]) == 100.0
    assert calculate_rsi([float(i) for i in range(15, 0, -1)]) == 0.0
    assert calculate_rsi([1.0, 2.0] * 8) == 50.0


def test_momentum_compares_last_two_windows():
    assert calculate_momentum([1.0] * 7 + [1.1] * 7) == 10.0
    assert calculate_momentum([1.0] * 7 + [3.0] * 7) == 100.0
    assert calculate_momentum([1.0]) == 0.0


def test_liquidity_score():
    assert calculate_liquidity_score([1.0] * 50, sales_count=300, days=30) == 100
    assert calculate_liquidity_score([1.0], sales_count=0, days=30) == 24
    assert calculate_liquidity_score([], sales_count=0, days=0) == 23


def test_trend_labels():
    assert volume_trend([1.0] * 7 + [2.0] * 7) == "increasing"
    assert volume_trend([2.0] * 7 + [1.0] * 7) == "decreasing"
    assert volume_trend([1.0] * 14) == "stable"
    assert price_trend(70, 10) == "bullish"
    assert price_trend(30, -10) == "bearish"
    assert price_trend(55, 10) == "neutral"


def test_market_indicators_without_sales_are_neutral():
    indicators = build_market_indicators([], [1.0, 2.0])
    assert indicators.to_dict() == {
        "rsi": 50.0,
        "momentum": 0.0,
        "liquidity_score": 0,
        "volume_trend": "stable",
        "price_trend": "neutral",
    }


def test_market_indicators_on_rising_prices():
    sales = [sale(ts=T0 + d * DAY, price=1.0 + d * 0.1) for d in range(15)]
    indicators = build_market_indicators(sales, [2.0] * 10, days=15)
    assert indicators.rsi == 100.0
    assert indicators.momentum > 5
    assert indicators.price_trend == "bullish"


# ── floor and daily stats ────────────────────────────────────────────────


def test_floor_is_tenth_percentile_of_last_week():
    now = T0 + 10 * DAY
    recent = [sale(ts=now - DAY, price=float(p)) for p in range(20, 0, -1)]
    old = [sale(ts=now - 30 * DAY, price=0.5)]
    assert estimate_floor(recent + old, now=now) == 3.0


def test_floor_falls_back_to_lowest_price_ever():
    now = T0 + 30 * DAY
    assert estimate_floor([sale(ts=T0, price=2.0), sale(ts=T0, price=1.5)], now=now) == 1.5
    assert estimate_floor([], now=now) == 0.0


def test_premium_tiers_are_inclusive_and_exclusive_of_each_other():
    day = [sale(price=p, ts=T0 + i) for i, p in enumerate([0.11, 0.125, 0.15, 0.1])]

    [stat] = aggregate_daily_stats(day, floor_price=0.1)

    assert stat.sales_above_10pct == 3
    assert stat.sales_above_25pct == 2
    assert stat.sales_above_50pct == 1
    assert stat.sales_count == 4
    assert stat.min_price == 0.1
    assert stat.max_price == 0.15


def test_daily_stats_group_by_utc_date_and_currency():
    sales = [
        sale(ts=T0 + 100, price=1.0, kind=CurrencyKind.NATIVE, usd=2000.0),
        sale(ts=T0 + 200, price=2.0, kind=CurrencyKind.WRAPPED, usd=4000.0),
        sale(ts=T0 + DAY + 5, price=3.0, kind=CurrencyKind.OTHER),
    ]

    first, second = aggregate_daily_stats(sales, floor_price=1.0, eth_price_usd=1000.0)

    assert (first.date, second.date) == ("2023-11-14", "2023-11-15")
    assert first.volume == 3.0
    assert first.volume_usd == 6000.0
    assert (first.eth_count, first.weth_count, first.other_count) == (1, 1, 0)
    assert first.weth_volume == 2.0
    # No USD prices on the second day: estimated from the ETH price
    assert second.volume_usd == 3000.0
    assert second.other_count == 1


# ── burns ────────────────────────────────────────────────────────────────


def burn(ts, amount=1000.0, tx=None):
    return BurnTransaction(tx_hash=tx or f"0xburn{ts}", block_number=ts // 12, timestamp=ts, amount=amount)


def test_burn_within_a_week_is_linked_and_later_one_is_standalone():
    sales = [SaleRef(token_id="1", sale_price=2.0, sale_tx="0xsale", timestamp=T0)]
    burns = [burn(T0 + 3 * DAY, 500.0), burn(T0 + 8 * DAY, 700.0)]

    latest, linked = link_burn_cycles(sales, burns)

    assert linked.sale.sale_tx == "0xsale"
    assert linked.burn_rate == 250.0
    assert linked.proceeds_eth == 2.0
    assert latest.sale is None
    assert latest.proceeds_eth == 0.0

    summary = summarize_burn_cycles([latest, linked])
    assert summary["cycles_with_sales"] == 1
    assert summary["standalone_burns"] == 1
    assert summary["total_burned"] == 1200.0


def test_burn_at_the_same_second_is_not_linked():
    sales = [SaleRef(token_id="1", sale_price=2.0, sale_tx="0xsale", timestamp=T0)]
    [cycle] = link_burn_cycles(sales, [burn(T0)])
    assert cycle.sale is None


def test_burn_exactly_seven_days_after_the_sale_is_linked():
    sales = [SaleRef(token_id="1", sale_price=2.0, sale_tx="0xsale", timestamp=T0)]

    [edge] = link_burn_cycles(sales, [burn(T0 + 7 * DAY)])
    [late] = link_burn_cycles(sales, [burn(T0 + 7 * DAY + 1)])

    assert edge.sale.sale_tx == "0xsale"
    assert late.sale is None


def test_each_burn_links_at_most_one_sale():
    sales = [
        SaleRef(token_id="1", sale_price=1.0, sale_tx="0xs1", timestamp=T0),
        SaleRef(token_id="2", sale_price=1.0, sale_tx="0xs2", timestamp=T0 + 10),
    ]
    cycles = link_burn_cycles(sales, [burn(T0 + DAY)])
    assert len(cycles) == 1
    assert cycles[0].sale.sale_tx == "0xs1"


# ── traders and market ───────────────────────────────────────────────────


def test_trader_analysis_new_and_repeat_buyers():
    sales = [
        sale(token="1", ts=T0, buyer=ALICE, seller=CAROL),
        sale(token="2", ts=T0 + 10, buyer=BOB, seller=CAROL),
        sale(token="3", ts=T0 + DAY, buyer=ALICE, seller=BOB, price=2.0),
    ]

    analysis = analyze_traders(sales)

    first, second = analysis.daily_stats
    assert (first.unique_buyers, first.new_buyers, first.repeat_buyers) == (2, 2, 0)
    assert (second.unique_buyers, second.new_buyers, second.repeat_buyers) == (1, 0, 1)
    assert analysis.repeat_buyer_rate == 50.0
    assert analysis.top_buyers[0].address == ALICE
    assert analysis.top_buyers[0].volume == 3.0
    assert analysis.top_sellers[0].address == CAROL
    assert analysis.flips == []


def test_trader_analysis_empty():
    assert analyze_traders([]).to_dict()["daily_stats"] == []


def test_market_depth_buckets_and_spread():
    listings = [
        Listing(order_hash="l1", token_id="1", price_eth=1.005, currency_symbol="ETH", maker=ALICE),
        Listing(order_hash="l2", token_id="2", price_eth=1.009, currency_symbol="ETH", maker=ALICE),
        Listing(order_hash="l3", token_id="3", price_eth=1.02, currency_symbol="ETH", maker=BOB),
    ]
    offers = [
        Offer(order_hash="o1", total_price_eth=3.0, quantity=3, currency_symbol="WETH"),
        Offer(order_hash="o2", total_price_eth=0.95, quantity=1, currency_symbol="WETH"),
    ]

    depth = build_market_depth(listings, offers)

    assert depth["listings"] == [{"price": 1.0, "depth": 2}, {"price": 1.02, "depth": 1}]
    assert depth["offers"] == [{"price": 1.0, "depth": 3}, {"price": 0.95, "depth": 1}]
    assert depth["highest_offer"] == 1.0
    assert depth["lowest_listing"] == 1.005
    assert depth["spread"] == 0.005
    assert depth["spread_pct"] == 0.5
    assert depth["total_offer_depth"] == 4


def test_collection_stats_combine_marketplace_and_recent_sales():
    now = T0 + 10 * DAY
    totals = {"floor_price": 0.5, "volume": 100.0, "sales": 200, "num_owners": 40}
    recent = [sale(ts=now - 3600, price=1.0), sale(ts=now - DAY - 3600, price=0.5)]

    stats = build_collection_stats(totals, recent, total_supply=1000, eth_price_usd=2000.0, now=now)

    assert stats["market_cap"] == 500.0
    assert stats["market_cap_usd"] == 1_000_000.0
    assert stats["avg_price"] == 0.5
    assert stats["volume_24h"] == 1.0
    assert stats["volume_24h_change"] == 100.0
    assert stats["sales_24h"] == 1
