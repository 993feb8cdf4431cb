import pytest

from vibescan.services.cache import CachedPrice, PriceStore


def price(tx_hash, eth=1.0, symbol="ETH"):
    return CachedPrice(tx_hash=tx_hash, price_eth=eth, currency_symbol=symbol, marketplace_id="opensea")


@pytest.mark.asyncio
async def test_memory_tier_is_lru_bounded():
    store = PriceStore(persistent=False, max_memory_entries=2)
    await store.put_many([price("0xa"), price("0xb")])
    await store.get("0xa")
    await store.put(price("0xc"))

    found = await store.get_many(["0xa", "0xb", "0xc"])
    assert set(found) == {"0xa", "0xc"}
    assert store.get_stats()["memory_entries"] == 2


@pytest.mark.asyncio
async def test_lookup_is_case_insensitive():
    store = PriceStore(persistent=False)
    await store.put(price("0xabc", eth=0.8))

    found = await store.get_many(["0xABC"])
    assert found["0xabc"].price_eth == 0.8


@pytest.mark.asyncio
async def test_prices_persist_across_instances(sqlite_engine):
    await PriceStore(sqlite_engine).put_many([price("0x01", 1.5, "WETH"), price("0x02", 2.0)])

    fresh = PriceStore(sqlite_engine)
    found = await fresh.get_many(["0x01", "0x02", "0x03"])

    assert found["0x01"] == price("0x01", 1.5, "WETH")
    assert "0x03" not in found
    stats = fresh.get_stats()
    assert stats["db_hits"] == 2
    assert stats["misses"] == 1

    # Second read is served from memory
    await fresh.get("0x01")
    assert fresh.get_stats()["memory_hits"] == 1


@pytest.mark.asyncio
async def test_duplicate_hashes_in_one_batch():
    store = PriceStore(persistent=False)
    await store.put_many([price("0xdup", 1.0), price("0xdup", 2.0)])
    assert (await store.get("0xdup")).price_eth == 2.0
