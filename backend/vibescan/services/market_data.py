"""
Market data pipelines behind the API.

Each ``compute_*`` coroutine pulls from the providers, reconciles and
aggregates, and returns a JSON-ready dict. Each ``get_*`` wraps the matching
pipeline in stale-while-revalidate under its cache key and TTL, which is
all the route handlers see.
"""

import asyncio
import logging
import time
from dataclasses import asdict
from functools import partial
from typing import Any, Awaitable, Callable, Optional

from vibescan.core.config import settings
from vibescan.core.errors import ProviderError, ProviderUnavailable
from vibescan.services.analytics import (
    aggregate_daily_stats,
    analyze_traders,
    build_collection_stats,
    build_market_depth,
    build_market_indicators,
    estimate_floor,
    link_burn_cycles,
    sales_from_lifecycles,
    summarize_burn_cycles,
)
from vibescan.services.cache import (
    CachedResult,
    PriceStore,
    StaleWhileRevalidate,
    get_cache,
)
from vibescan.services.chain import EtherscanClient, Transfer
from vibescan.services.enrichment import (
    EnrichmentResult,
    PriceEnricher,
    transform_to_sale_records,
)
from vibescan.services.ledger import (
    LifecycleStatus,
    TokenLifecycle,
    attach_prices,
    holder_distribution,
    replay,
    summarize_lifecycles,
    top_holders,
    whale_concentration,
)
from vibescan.services.marketplace import CoinGeckoClient, OpenSeaClient
from vibescan.services.quality import (
    DataQualityReport,
    validate_holder_count,
    validate_price_coverage,
    validate_strategy_balance,
    validate_transfer_count,
)
from vibescan.services.strategy_sync import StrategySyncService, get_strategy_sync

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400
MARKET_WINDOW_DAYS = 30
SHORT_HISTORY_DAYS = 7
TRADER_SALES_MAX_PAGES = 20
DEPTH_LISTINGS_LIMIT = 200
DEPTH_OFFERS_LIMIT = 200

# Cache keys
COLLECTION_STATS_KEY = "collection-stats"
MARKET_INDICATORS_KEY = "market-indicators"
MARKET_DEPTH_KEY = "market-depth"
HOLDERS_KEY = "holders"
STRATEGY_HOLDINGS_KEY = "strategy-holdings"


def events_key(days: int) -> str:
    return f"events:{days}d"


def price_history_key(days: int) -> str:
    return f"price-history:{days}d"


def trader_analysis_key(days: int) -> str:
    return f"trader-analysis:{days}d"


def burn_cycles_key(days: int) -> str:
    return f"burn-cycles:{days}d"


def price_history_ttl(days: int) -> int:
    if days <= SHORT_HISTORY_DAYS:
        return settings.CACHE_TTL_PRICE_HISTORY_SHORT
    return settings.CACHE_TTL_PRICE_HISTORY


def lifecycle_to_dict(lc: TokenLifecycle) -> dict:
    return {
        "token_id": lc.token_id,
        "status": lc.status.value,
        "purchase": asdict(lc.purchase),
        "sale": asdict(lc.sale) if lc.sale is not None else None,
        "hold_days": round(lc.hold_days, 1),
    }


class MarketDataService:
    """
    Usage:
        service = get_market_data_service()
        result = await service.get_collection_stats()
        result.value, result.status
    """

    def __init__(
        self,
        chain: Optional[EtherscanClient] = None,
        marketplace: Optional[OpenSeaClient] = None,
        price_feed: Optional[CoinGeckoClient] = None,
        price_store: Optional[PriceStore] = None,
        strategy: Optional[StrategySyncService] = None,
        swr: Optional[StaleWhileRevalidate] = None,
    ):
        self.chain = chain or EtherscanClient()
        self.marketplace = marketplace or OpenSeaClient()
        self.price_feed = price_feed or CoinGeckoClient()
        self.price_store = price_store or PriceStore()
        self.enricher = PriceEnricher(self.marketplace, self.price_store)
        self._strategy = strategy
        self._swr = swr

    @property
    def swr(self) -> StaleWhileRevalidate:
        if self._swr is None:
            self._swr = StaleWhileRevalidate(get_cache())
        return self._swr

    @property
    def strategy(self) -> StrategySyncService:
        if self._strategy is None:
            self._strategy = get_strategy_sync()
        return self._strategy

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    async def _eth_price_or_none(self) -> Optional[float]:
        try:
            return (await self.price_feed.get_eth_price()).usd
        except ProviderError as e:
            logger.warning("No ETH price available, USD values omitted: %s", e)
            return None

    async def _enriched_sales(self, days: int) -> tuple[EnrichmentResult, Optional[float]]:
        eth_price, transfers = await asyncio.gather(
            self._eth_price_or_none(),
            self.chain.get_transfers_in_date_range(days),
        )
        return await self.enricher.enrich(transfers, eth_price), eth_price

    async def _total_supply(self) -> int:
        try:
            return await self.chain.get_total_supply(settings.CONTRACT_ADDRESS)
        except ProviderError as e:
            logger.warning("Total supply unavailable, market cap will read 0: %s", e)
            return 0

    async def _recent_marketplace_sales(self, days: int) -> list:
        now = int(time.time())
        return await self.marketplace.fetch_sales(
            after=now - days * SECONDS_PER_DAY,
            before=now,
            max_pages=TRADER_SALES_MAX_PAGES,
        )

    @staticmethod
    def _coverage_report(result: EnrichmentResult, context: str) -> DataQualityReport:
        gap = result.gap
        report = DataQualityReport(gap=gap)
        report.add(validate_price_coverage(gap.matched, gap.total))
        report.log(context)
        return report

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    async def compute_collection_stats(self) -> dict:
        """
        Marketplace all-time totals plus our own last-30-day sales.

        Raises ProviderUnavailable when floor, volume and owners all read
        zero, so a broken upstream answer falls back to the stale copy.
        """
        eth_price, stats, transfers, supply = await asyncio.gather(
            self.price_feed.get_eth_price(),
            self.marketplace.get_collection_stats(),
            self.chain.get_transfers_in_date_range(MARKET_WINDOW_DAYS),
            self._total_supply(),
        )

        totals = dict(stats.get("total") or {})
        if not any(float(totals.get(k) or 0) for k in ("floor_price", "volume", "num_owners")):
            raise ProviderUnavailable(
                "Collection stats: floor, volume and owners are all zero", provider="opensea"
            )
        result = await self.enricher.enrich(transfers, eth_price.usd)
        if not totals.get("floor_price") and result.sales:
            totals["floor_price"] = estimate_floor(result.sales)

        holders = await self.swr.cache.get(HOLDERS_KEY, allow_stale=True)
        data = build_collection_stats(
            totals,
            result.sales,
            supply,
            eth_price.usd,
            holder_count=holders["holder_count"] if holders else None,
        )

        report = self._coverage_report(result, "collection-stats")
        intervals = {i.get("interval"): i for i in stats.get("intervals") or []}
        thirty_day = intervals.get("thirty_day") or {}
        if thirty_day.get("sales"):
            report.add(validate_transfer_count(len(result.sales), int(thirty_day["sales"])))
        data["data_quality"] = report.to_dict()
        return data

    async def compute_events(self, days: int) -> dict:
        result, eth_price = await self._enriched_sales(days)
        report = self._coverage_report(result, f"events {days}d")
        return {
            "days": days,
            "sales": transform_to_sale_records(result.sales),
            "unpriced_transfers": len(result.unpriced),
            "eth_price_usd": eth_price,
            "data_quality": report.to_dict(),
        }

    async def compute_price_history(self, days: int) -> dict:
        result, eth_price = await self._enriched_sales(days)
        floor_price = estimate_floor(result.sales)
        daily = aggregate_daily_stats(result.sales, floor_price, eth_price)
        report = self._coverage_report(result, f"price-history {days}d")
        return {
            "days": days,
            "floor_price": floor_price,
            "eth_price_usd": eth_price,
            "daily": [d.to_dict() for d in daily],
            "data_quality": report.to_dict(),
        }

    async def compute_trader_analysis(self, days: int) -> dict:
        sales = await self._recent_marketplace_sales(days)
        return {
            "days": days,
            "total_sales": len(sales),
            **analyze_traders(sales).to_dict(),
        }

    async def compute_market_indicators(self) -> dict:
        sales, listings = await asyncio.gather(
            self._recent_marketplace_sales(MARKET_WINDOW_DAYS),
            self.marketplace.get_listings(),
        )
        indicators = build_market_indicators(
            sales, [listing.price_eth for listing in listings], days=MARKET_WINDOW_DAYS
        )
        return {
            **indicators.to_dict(),
            "sales_count": len(sales),
            "listings_count": len(listings),
        }

    async def compute_market_depth(self) -> dict:
        listings, offers = await asyncio.gather(
            self.marketplace.get_listings(limit=DEPTH_LISTINGS_LIMIT),
            self.marketplace.get_offers(limit=DEPTH_OFFERS_LIMIT),
        )
        return build_market_depth(listings, offers)

    async def compute_holders(self) -> dict:
        """Replay every collection transfer since deployment into current holders."""
        head = await self.chain.get_current_block_number()
        transfers, supply, stats = await asyncio.gather(
            self.chain.get_logs_batched(
                settings.CONTRACT_ADDRESS, settings.COLLECTION_DEPLOYMENT_BLOCK, head
            ),
            self._total_supply(),
            self.marketplace.get_collection_stats(),
        )
        snapshot = replay(transfers)

        report = DataQualityReport()
        num_owners = int((stats.get("total") or {}).get("num_owners") or 0)
        if num_owners:
            report.add(validate_holder_count(snapshot.holder_count, num_owners))
        report.log("holders")

        return {
            "holder_count": snapshot.holder_count,
            "total_supply": supply,
            "transfer_count": snapshot.transfer_count,
            "distribution": holder_distribution(snapshot, supply),
            "top_holders": top_holders(snapshot, supply),
            "whale_concentration": whale_concentration(snapshot, supply),
            "data_quality": report.to_dict(),
        }

    async def _strategy_lifecycles(
        self,
    ) -> tuple[list[Transfer], list[TokenLifecycle], EnrichmentResult]:
        transfers = await self.strategy.load_transfers()
        snapshot = replay(transfers, self.strategy.strategy_address)
        lifecycles = list(snapshot.previous_lifecycles) + list(snapshot.history_of.values())

        result = await self.enricher.enrich(transfers, await self._eth_price_or_none())
        prices = {sale.tx_hash: sale.price_eth for sale in result.sales}
        return transfers, attach_prices(lifecycles, prices), result

    async def compute_strategy_holdings(self) -> dict:
        transfers, lifecycles, result = await self._strategy_lifecycles()
        held = sorted(
            (lc for lc in lifecycles if lc.status == LifecycleStatus.HELD),
            key=lambda lc: lc.purchase.timestamp,
            reverse=True,
        )
        sold = sorted(
            (lc for lc in lifecycles if lc.status == LifecycleStatus.SOLD),
            key=lambda lc: lc.sale.timestamp,
            reverse=True,
        )

        report = self._coverage_report(result, "strategy-holdings")
        try:
            balance = await self.chain.balance_of(
                settings.CONTRACT_ADDRESS, self.strategy.strategy_address
            )
        except ProviderError as e:
            logger.warning("Strategy balanceOf unavailable: %s", e)
        else:
            report.add(validate_strategy_balance(len(held), balance))

        return {
            "strategy_address": self.strategy.strategy_address,
            "transfer_count": len(transfers),
            "summary": asdict(summarize_lifecycles(lifecycles)),
            "held": [lifecycle_to_dict(lc) for lc in held],
            "sold": [lifecycle_to_dict(lc) for lc in sold],
            "data_quality": report.to_dict(),
        }

    async def compute_burn_cycles(self, days: int) -> dict:
        """
        Links every priced strategy sale to the burns that followed it, then
        keeps cycles whose burn falls inside the window.
        """
        (_, lifecycles, result), burns = await asyncio.gather(
            self._strategy_lifecycles(), self.strategy.load_burns()
        )
        cutoff = time.time() - days * SECONDS_PER_DAY
        cycles = [
            c
            for c in link_burn_cycles(sales_from_lifecycles(lifecycles), burns)
            if c.burn_timestamp >= cutoff
        ]
        report = self._coverage_report(result, f"burn-cycles {days}d")
        return {
            "days": days,
            "cycles": [c.to_dict() for c in cycles],
            "stats": summarize_burn_cycles(cycles),
            "data_quality": report.to_dict(),
        }

    # ------------------------------------------------------------------
    # Cache-fronted reads
    # ------------------------------------------------------------------

    async def _cached(
        self, key: str, ttl: int, fetcher: Callable[[], Awaitable[Any]], force_refresh: bool
    ) -> CachedResult:
        return await self.swr.get_or_fetch(key, ttl, fetcher, force_refresh=force_refresh)

    async def get_collection_stats(self, force_refresh: bool = False) -> CachedResult:
        return await self._cached(
            COLLECTION_STATS_KEY,
            settings.CACHE_TTL_COLLECTION_STATS,
            self.compute_collection_stats,
            force_refresh,
        )

    async def get_events(self, days: int, force_refresh: bool = False) -> CachedResult:
        return await self._cached(
            events_key(days),
            settings.CACHE_TTL_RECENT_EVENTS,
            partial(self.compute_events, days),
            force_refresh,
        )

    async def get_price_history(self, days: int, force_refresh: bool = False) -> CachedResult:
        return await self._cached(
            price_history_key(days),
            price_history_ttl(days),
            partial(self.compute_price_history, days),
            force_refresh,
        )

    async def get_trader_analysis(self, days: int, force_refresh: bool = False) -> CachedResult:
        return await self._cached(
            trader_analysis_key(days),
            settings.CACHE_TTL_TRADER_ANALYSIS,
            partial(self.compute_trader_analysis, days),
            force_refresh,
        )

    async def get_market_indicators(self, force_refresh: bool = False) -> CachedResult:
        return await self._cached(
            MARKET_INDICATORS_KEY,
            settings.CACHE_TTL_MARKET_INDICATORS,
            self.compute_market_indicators,
            force_refresh,
        )

    async def get_market_depth(self, force_refresh: bool = False) -> CachedResult:
        return await self._cached(
            MARKET_DEPTH_KEY,
            settings.CACHE_TTL_MARKET_DEPTH,
            self.compute_market_depth,
            force_refresh,
        )

    async def get_holders(self, force_refresh: bool = False) -> CachedResult:
        return await self._cached(
            HOLDERS_KEY, settings.CACHE_TTL_HOLDERS, self.compute_holders, force_refresh
        )

    async def get_strategy_holdings(self, force_refresh: bool = False) -> CachedResult:
        return await self._cached(
            STRATEGY_HOLDINGS_KEY,
            settings.CACHE_TTL_STRATEGY,
            self.compute_strategy_holdings,
            force_refresh,
        )

    async def get_burn_cycles(self, days: int, force_refresh: bool = False) -> CachedResult:
        return await self._cached(
            burn_cycles_key(days),
            settings.CACHE_TTL_STRATEGY,
            partial(self.compute_burn_cycles, days),
            force_refresh,
        )

    async def refresh(self, target: str) -> CachedResult:
        """Force a synchronous refresh of one endpoint's default view."""
        readers: dict[str, Callable[..., Awaitable[CachedResult]]] = {
            "collection-stats": self.get_collection_stats,
            "events": partial(self.get_events, MARKET_WINDOW_DAYS),
            "price-history": partial(self.get_price_history, MARKET_WINDOW_DAYS),
            "trader-analysis": partial(self.get_trader_analysis, MARKET_WINDOW_DAYS),
            "market-indicators": self.get_market_indicators,
            "market-depth": self.get_market_depth,
            "holders": self.get_holders,
            "strategy-holdings": self.get_strategy_holdings,
            "burn-cycles": partial(self.get_burn_cycles, MARKET_WINDOW_DAYS),
        }
        reader = readers.get(target)
        if reader is None:
            raise KeyError(target)
        return await reader(force_refresh=True)

    def get_stats(self) -> dict:
        return {
            "etherscan": self.chain.get_stats(),
            "opensea": self.marketplace.fetcher.get_stats(),
            "price_store": self.price_store.get_stats(),
        }


REFRESH_TARGETS = (
    "collection-stats",
    "events",
    "price-history",
    "trader-analysis",
    "market-indicators",
    "market-depth",
    "holders",
    "strategy-holdings",
    "burn-cycles",
)

_service: Optional[MarketDataService] = None


def get_market_data_service() -> MarketDataService:
    """Get or create the global market data service."""
    global _service
    if _service is None:
        _service = MarketDataService()
    return _service
