import time
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from chain_fixtures import ALICE, BOB, CAROL, COLLECTION, STRATEGY
from vibescan.core.config import settings
from vibescan.core.errors import ProviderUnavailable
from vibescan.services.cache import CacheStatus, MemoryCache, PriceStore, StaleWhileRevalidate
from vibescan.services.chain import ZERO_ADDRESS, BurnTransaction, Transfer
from vibescan.services.market_data import MarketDataService, price_history_ttl
from vibescan.services.marketplace import EthPrice, Listing, Offer, SaleEvent
from vibescan.services.strategy_sync import StrategySyncService

DAY = 86400
NOW = int(time.time())


def sale_event(tx, eth, ts=NOW - 3600, token="1", buyer=BOB, seller=ALICE):
    return SaleEvent(
        tx_hash=tx,
        token_id=token,
        seller=seller,
        buyer=buyer,
        price_raw=int(eth * 10 ** 18),
        decimals=18,
        currency_symbol="ETH",
        timestamp=ts,
    )


TRANSFERS = [
    Transfer("0xs1", 1, NOW - 3600, ALICE, BOB, "1"),
    Transfer("0xs2", 2, NOW - 1800, BOB, CAROL, "1"),
    Transfer("0xu1", 3, NOW - 60, CAROL, ALICE, "2"),
]
EVENTS = [sale_event("0xs1", 1.0), sale_event("0xs2", 1.5)]


@pytest.fixture
def service():
    chain = AsyncMock()
    chain.get_transfers_in_date_range.return_value = TRANSFERS
    chain.get_total_supply.return_value = 100
    marketplace = AsyncMock()
    marketplace.fetch_sales.return_value = EVENTS
    price_feed = AsyncMock()
    price_feed.get_eth_price.return_value = EthPrice(usd=2000.0, usd_24h_change=0.0, fetched_at=NOW)
    return MarketDataService(
        chain,
        marketplace,
        price_feed,
        PriceStore(persistent=False),
        strategy=AsyncMock(),
        swr=StaleWhileRevalidate(MemoryCache(), timeout_sec=5),
    )


def test_short_price_history_windows_expire_sooner():
    assert price_history_ttl(7) == settings.CACHE_TTL_PRICE_HISTORY_SHORT
    assert price_history_ttl(30) == settings.CACHE_TTL_PRICE_HISTORY


@pytest.mark.asyncio
async def test_events_are_priced_cached_and_refreshable(service):
    result = await service.get_events(30)

    assert result.status == CacheStatus.MISS
    data = result.value
    assert [s["tx_hash"] for s in data["sales"]] == ["0xs2", "0xs1"]
    assert data["sales"][0]["price_usd"] == 3000.0
    assert data["unpriced_transfers"] == 1
    assert data["data_quality"]["price_coverage"] == 0.6667
    assert data["data_quality"]["passed"] is True

    assert (await service.get_events(30)).status == CacheStatus.HIT
    service.chain.get_transfers_in_date_range.assert_awaited_once_with(30)

    refreshed = await service.refresh("events")
    assert refreshed.status == CacheStatus.MISS
    assert service.chain.get_transfers_in_date_range.await_count == 2


@pytest.mark.asyncio
async def test_unknown_refresh_target(service):
    with pytest.raises(KeyError):
        await service.refresh("everything")


@pytest.mark.asyncio
async def test_collection_stats_reject_all_zero_totals(service):
    service.marketplace.get_collection_stats.return_value = {
        "total": {"floor_price": 0, "volume": 0, "num_owners": 0}
    }
    with pytest.raises(ProviderUnavailable):
        await service.get_collection_stats()


@pytest.mark.asyncio
async def test_collection_stats(service):
    service.marketplace.get_collection_stats.return_value = {
        "total": {"floor_price": 0.5, "volume": 10.0, "sales": 20, "num_owners": 5},
        "intervals": [{"interval": "thirty_day", "sales": 2}],
    }
    await service.swr.cache.set("holders", {"holder_count": 6}, ttl_seconds=60)

    data = (await service.get_collection_stats()).value

    assert data["market_cap"] == 50.0
    assert data["holder_count"] == 6
    assert data["volume_24h"] == 2.5
    assert data["data_quality"]["checks"]["transfer_count"] == 0.0
    service.price_feed.get_eth_price.assert_awaited_once()


@pytest.mark.asyncio
async def test_price_history(service):
    data = await service.compute_price_history(7)

    assert data["floor_price"] == 1.0
    assert data["eth_price_usd"] == 2000.0
    assert all(d["floor_price"] == 1.0 for d in data["daily"])
    assert sum(d["sales_count"] for d in data["daily"]) == 2


@pytest.mark.asyncio
async def test_trader_analysis_uses_marketplace_sales(service):
    data = await service.compute_trader_analysis(7)

    assert data["total_sales"] == 2
    assert data["days"] == 7
    assert service.marketplace.fetch_sales.await_args.kwargs["max_pages"] == 20


@pytest.mark.asyncio
async def test_market_indicators_and_depth(service):
    service.marketplace.get_listings.return_value = [
        Listing(order_hash="l", token_id="3", price_eth=1.2, currency_symbol="ETH", maker=ALICE)
    ]
    service.marketplace.get_offers.return_value = [
        Offer(order_hash="o", total_price_eth=1.0, quantity=1, currency_symbol="WETH")
    ]

    indicators = await service.compute_market_indicators()
    assert indicators["sales_count"] == 2
    assert indicators["listings_count"] == 1
    assert indicators["rsi"] == 50.0

    depth = await service.compute_market_depth()
    assert depth["lowest_listing"] == 1.2
    assert depth["highest_offer"] == 1.0


@pytest.mark.asyncio
async def test_holders_replay_full_history(service):
    service.chain.get_current_block_number.return_value = 500
    service.chain.get_logs_batched.return_value = [
        Transfer("0xm1", 10, 1, ZERO_ADDRESS, ALICE, "1"),
        Transfer("0xm2", 11, 2, ZERO_ADDRESS, BOB, "2"),
        Transfer("0xm3", 12, 3, ZERO_ADDRESS, BOB, "3"),
    ]
    service.chain.get_total_supply.return_value = 3
    service.marketplace.get_collection_stats.return_value = {"total": {"num_owners": 2}}

    data = await service.compute_holders()

    service.chain.get_logs_batched.assert_awaited_once_with(
        settings.CONTRACT_ADDRESS, settings.COLLECTION_DEPLOYMENT_BLOCK, 500
    )
    assert data["holder_count"] == 2
    assert data["distribution"][0]["percentage"] == 33.33
    assert data["distribution"][1]["percentage"] == 66.67
    assert data["top_holders"][0] == {"address": BOB, "count": 2, "percentage": 66.67}
    assert data["whale_concentration"]["top10"] == 100.0
    assert data["data_quality"]["passed"] is True


# ── strategy ─────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def strategy_service(service, sqlite_engine):
    strategy = StrategySyncService(
        sqlite_engine,
        AsyncMock(),
        strategy_address=STRATEGY,
        collection_address=COLLECTION,
        start_block=0,
    )
    await strategy.store_transfers(
        [
            Transfer("0xbuy1", 10, NOW - 5 * DAY, ALICE, STRATEGY, "1"),
            Transfer("0xsell1", 20, NOW - 4 * DAY, STRATEGY, BOB, "1"),
            Transfer("0xbuy2", 30, NOW - 2 * DAY, CAROL, STRATEGY, "2"),
        ]
    )
    await strategy.store_burns(
        [
            BurnTransaction("0xburn1", 25, NOW - 3 * DAY, 600.0),
            BurnTransaction("0xburn0", 5, NOW - 60 * DAY, 100.0),
        ]
    )
    service._strategy = strategy
    service.marketplace.fetch_sales.return_value = [
        sale_event("0xbuy1", 1.0, ts=NOW - 5 * DAY, seller=ALICE, buyer=STRATEGY),
        sale_event("0xsell1", 1.5, ts=NOW - 4 * DAY, seller=STRATEGY, buyer=BOB),
        sale_event("0xbuy2", 2.0, ts=NOW - 2 * DAY, seller=CAROL, buyer=STRATEGY, token="2"),
    ]
    service.chain.balance_of.return_value = 1
    return service


@pytest.mark.asyncio
async def test_strategy_holdings(strategy_service):
    data = await strategy_service.compute_strategy_holdings()

    assert [lc["token_id"] for lc in data["held"]] == ["2"]
    assert [lc["token_id"] for lc in data["sold"]] == ["1"]
    assert data["sold"][0]["sale"]["price_eth"] == 1.5
    assert data["sold"][0]["hold_days"] == 1.0
    assert data["summary"]["total_invested"] == 3.0
    assert data["summary"]["total_proceeds"] == 1.5
    assert data["transfer_count"] == 3
    assert data["data_quality"]["checks"]["strategy_balance"] == 0.0
    strategy_service.chain.balance_of.assert_awaited_once_with(settings.CONTRACT_ADDRESS, STRATEGY)


@pytest.mark.asyncio
async def test_burn_cycles_within_window(strategy_service):
    data = await strategy_service.compute_burn_cycles(30)

    [cycle] = data["cycles"]
    assert cycle["sale"]["sale_tx"] == "0xsell1"
    assert cycle["burn_tx"] == "0xburn1"
    assert cycle["burn_rate"] == 400.0
    assert data["stats"]["cycles_with_sales"] == 1
    assert data["stats"]["standalone_burns"] == 0
