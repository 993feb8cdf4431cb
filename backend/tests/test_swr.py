import asyncio
import logging

import pytest

from vibescan.core.errors import EndpointTimeout, ProviderUnavailable
from vibescan.services.cache import CacheStatus, MemoryCache, StaleWhileRevalidate, drain_background_tasks


def counting(value=None, exc=None, delay=0.0):
    calls = []

    async def fetcher():
        calls.append(1)
        if delay:
            await asyncio.sleep(delay)
        if exc is not None:
            raise exc
        return value

    return fetcher, calls


@pytest.mark.asyncio
async def test_miss_fetches_and_stores(clock):
    cache = MemoryCache(clock=clock)
    swr = StaleWhileRevalidate(cache, timeout_sec=1)
    fetcher, calls = counting({"v": 1})

    result = await swr.get_or_fetch("collection-stats", 60, fetcher)
    assert result.status == CacheStatus.MISS
    assert result.value == {"v": 1}
    assert not result.is_stale

    again = await swr.get_or_fetch("collection-stats", 60, fetcher)
    assert again.status == CacheStatus.HIT
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_stale_is_served_and_refreshed_in_background(clock):
    cache = MemoryCache(clock=clock)
    await cache.set("events:30d", "old", ttl_seconds=10)
    clock.advance(11)
    swr = StaleWhileRevalidate(cache, timeout_sec=1)
    fetcher, calls = counting("new")

    result = await swr.get_or_fetch("events:30d", 60, fetcher)
    assert result.status == CacheStatus.STALE
    assert result.value == "old"
    assert result.is_stale

    await drain_background_tasks()
    assert len(calls) == 1
    assert await cache.get("events:30d") == "new"


@pytest.mark.asyncio
async def test_failed_refresh_falls_back_to_stale_value(clock):
    cache = MemoryCache(clock=clock)
    await cache.set("market-depth", "old", ttl_seconds=10)
    swr = StaleWhileRevalidate(cache, timeout_sec=1)
    fetcher, _ = counting(exc=ProviderUnavailable("down"))

    result = await swr.get_or_fetch("market-depth", 60, fetcher, force_refresh=True)
    assert result.status == CacheStatus.FALLBACK
    assert result.value == "old"


@pytest.mark.asyncio
async def test_foreground_failure_is_logged_once(clock, caplog):
    cache = MemoryCache(clock=clock)
    await cache.set("market-depth", "old", ttl_seconds=10)
    swr = StaleWhileRevalidate(cache, timeout_sec=1)
    fetcher, _ = counting(exc=ProviderUnavailable("down"))

    with caplog.at_level(logging.WARNING, logger="vibescan.services.cache.swr"):
        await swr.get_or_fetch("market-depth", 60, fetcher, force_refresh=True)
        await drain_background_tasks()

    failures = [r for r in caplog.records if "market-depth" in r.getMessage()]
    assert len(failures) == 1
    assert "serving stale" in failures[0].getMessage()


@pytest.mark.asyncio
async def test_background_refresh_failure_is_logged(clock, caplog):
    cache = MemoryCache(clock=clock)
    await cache.set("events:7d", "old", ttl_seconds=10)
    clock.advance(11)
    swr = StaleWhileRevalidate(cache, timeout_sec=1)
    fetcher, _ = counting(exc=ProviderUnavailable("down"))

    with caplog.at_level(logging.WARNING, logger="vibescan.services.cache.swr"):
        result = await swr.get_or_fetch("events:7d", 60, fetcher)
        await drain_background_tasks()

    assert result.status == CacheStatus.STALE
    assert any("Refresh of events:7d failed" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_failure_without_cached_value_raises(clock):
    swr = StaleWhileRevalidate(MemoryCache(clock=clock), timeout_sec=1)
    fetcher, _ = counting(exc=ProviderUnavailable("down"))

    with pytest.raises(ProviderUnavailable):
        await swr.get_or_fetch("holders", 60, fetcher)


@pytest.mark.asyncio
async def test_deadline_without_cached_value_raises_endpoint_timeout(clock):
    cache = MemoryCache(clock=clock)
    swr = StaleWhileRevalidate(cache, timeout_sec=0.05)
    fetcher, _ = counting("slow", delay=0.2)

    with pytest.raises(EndpointTimeout) as exc_info:
        await swr.get_or_fetch("trader-analysis:30d", 60, fetcher)
    assert exc_info.value.key == "trader-analysis:30d"

    # The fetch kept running and still filled the cache
    await drain_background_tasks()
    assert await cache.get("trader-analysis:30d") == "slow"


@pytest.mark.asyncio
async def test_deadline_with_cached_value_serves_it(clock):
    cache = MemoryCache(clock=clock)
    await cache.set("price-history:30d", "old", ttl_seconds=60)
    swr = StaleWhileRevalidate(cache, timeout_sec=0.05)
    fetcher, _ = counting("new", delay=0.2)

    result = await swr.get_or_fetch("price-history:30d", 60, fetcher, force_refresh=True)
    assert result.status == CacheStatus.TIMEOUT
    assert result.timed_out
    assert result.value == "old"
    await drain_background_tasks()


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_fetch(clock):
    swr = StaleWhileRevalidate(MemoryCache(clock=clock), timeout_sec=1)
    fetcher, calls = counting("v", delay=0.05)

    results = await asyncio.gather(
        *(swr.get_or_fetch("market-indicators", 60, fetcher) for _ in range(5))
    )
    assert [r.value for r in results] == ["v"] * 5
    assert len(calls) == 1
