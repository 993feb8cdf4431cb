from unittest.mock import AsyncMock

import pytest

from chain_fixtures import ALICE, BOB, CAROL
from vibescan.core.errors import ProviderUnavailable
from vibescan.services.cache import CachedPrice, PriceStore
from vibescan.services.chain import ZERO_ADDRESS, Transfer
from vibescan.services.enrichment import (
    CurrencyKind,
    EnrichedSale,
    PriceEnricher,
    build_event_map,
    classify_currency,
    transform_to_sale_records,
)
from vibescan.services.marketplace import SaleEvent

T0 = 1_700_000_000


def transfer(tx, ts, frm=ALICE, to=BOB, token="1"):
    return Transfer(tx_hash=tx, block_number=ts // 12, timestamp=ts, from_addr=frm, to_addr=to, token_id=token)


def event(tx, eth, symbol="ETH", ts=T0):
    return SaleEvent(
        tx_hash=tx.lower(),
        token_id="1",
        seller=ALICE,
        buyer=BOB,
        price_raw=int(eth * 10 ** 18),
        decimals=18,
        currency_symbol=symbol,
        timestamp=ts,
    )


def make_enricher(events=(), exc=None):
    marketplace = AsyncMock()
    if exc is not None:
        marketplace.fetch_sales.side_effect = exc
    else:
        marketplace.fetch_sales.return_value = list(events)
    store = PriceStore(persistent=False)
    return PriceEnricher(marketplace, store, max_pages=5, page_size=50), marketplace, store


def test_classify_currency():
    assert classify_currency("eth") == CurrencyKind.NATIVE
    assert classify_currency("WETH") == CurrencyKind.WRAPPED
    assert classify_currency("USDC") == CurrencyKind.OTHER
    assert classify_currency(None) == CurrencyKind.OTHER


def test_event_map_keeps_last_event_per_hash():
    mapping = build_event_map([event("0xAA", 1.0), event("0xaa", 2.0)])
    assert mapping["0xaa"].price_eth == 2.0


@pytest.mark.asyncio
async def test_only_matched_transfers_become_sales():
    transfers = [
        transfer("0xMint", T0, frm=ZERO_ADDRESS),
        transfer("0xSOLD", T0 + 10),
        transfer("0xgift", T0 + 20, frm=BOB, to=CAROL, token="2"),
    ]
    enricher, marketplace, _ = make_enricher([event("0xsold", 1.25, "WETH"), event("0xother", 9.0)])

    result = await enricher.enrich(transfers, eth_price_usd=2000.0)

    [sale] = result.sales
    assert sale.tx_hash == "0xsold"
    assert sale.price_eth == 1.25
    assert sale.price_usd == 2500.0
    assert sale.currency_kind == CurrencyKind.WRAPPED
    assert [t.tx_hash for t in result.unpriced] == ["0xgift"]
    assert result.gap.total == 2
    assert result.gap.matched == 1

    marketplace.fetch_sales.assert_awaited_once_with(
        after=T0 + 9, before=T0 + 21, max_pages=5, target_count=4, page_size=50
    )


@pytest.mark.asyncio
async def test_cached_prices_are_not_refetched():
    transfers = [transfer("0x01", T0), transfer("0x02", T0 + 100)]
    enricher, marketplace, store = make_enricher([event("0x01", 1.0), event("0x02", 2.0)])

    await enricher.enrich(transfers)
    marketplace.fetch_sales.reset_mock()

    result = await enricher.enrich(transfers + [transfer("0x03", T0 + 200)])

    assert result.cached_count == 2
    assert result.total_uncached == 1
    assert marketplace.fetch_sales.await_args.kwargs["after"] == T0 + 199
    assert {s.tx_hash for s in result.sales} == {"0x01", "0x02"}
    assert (await store.get("0x02")).price_eth == 2.0


@pytest.mark.asyncio
async def test_marketplace_outage_leaves_transfers_unpriced():
    enricher, _, _ = make_enricher(exc=ProviderUnavailable("opensea down"))
    store_hit = CachedPrice("0xcached", 0.5, "ETH", "opensea")
    await enricher.price_store.put(store_hit)

    result = await enricher.enrich([transfer("0xcached", T0), transfer("0xnew", T0 + 1)])

    assert [s.tx_hash for s in result.sales] == ["0xcached"]
    assert [t.tx_hash for t in result.unpriced] == ["0xnew"]
    assert result.coverage == 0.0


@pytest.mark.asyncio
async def test_no_candidates_skips_marketplace():
    enricher, marketplace, _ = make_enricher()
    result = await enricher.enrich([transfer("0xburn", T0, to=ZERO_ADDRESS)])
    assert result.sales == []
    marketplace.fetch_sales.assert_not_awaited()


def test_sale_records_newest_first():
    transfers = [transfer("0x1", T0), transfer("0x2", T0 + 50)]
    sales = [
        EnrichedSale.from_match(t, CachedPrice(t.tx_hash, 1.0, "ETH", "opensea"), None)
        for t in transfers
    ]
    records = transform_to_sale_records(sales)
    assert [r["tx_hash"] for r in records] == ["0x2", "0x1"]
    assert records[0]["currency_kind"] == "NATIVE"
    assert EnrichedSale.from_dict(records[0]) == sales[1]
