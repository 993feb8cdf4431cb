"""
Price enrichment: join on-chain Transfers with marketplace sale events by
transaction hash to recover what each token actually traded for.

Flow for one batch of transfers:

1. drop mints and burns
2. split into already-priced (price cache hit) and uncached
3. pull marketplace sales for the uncached time window, bounded by a page
   ceiling and by "enough events" (2x the uncached count)
4. map lowercased tx hash -> sale event, last write wins
5. price, classify and persist every match; unmatched transfers stay as
   plain transfer facts and never reach price or volume aggregates
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from vibescan.core.config import settings
from vibescan.core.errors import ProviderError
from vibescan.services.cache.prices import CachedPrice, PriceStore
from vibescan.services.chain.logs import Transfer, filter_to_sales_only
from vibescan.services.marketplace.opensea import OpenSeaClient, SaleEvent
from vibescan.services.quality import EnrichmentGap, validate_price_coverage

logger = logging.getLogger(__name__)

EVENTS_PER_TRANSFER_TARGET = 2


class CurrencyKind(str, Enum):
    NATIVE = "NATIVE"
    WRAPPED = "WRAPPED"
    OTHER = "OTHER"


def classify_currency(symbol: Optional[str]) -> CurrencyKind:
    symbol = (symbol or "").upper()
    if symbol == "ETH":
        return CurrencyKind.NATIVE
    if symbol == "WETH":
        return CurrencyKind.WRAPPED
    return CurrencyKind.OTHER


@dataclass(frozen=True)
class EnrichedSale:
    """A Transfer with a matched marketplace price. Never built without one."""

    tx_hash: str
    token_id: str
    block_number: int
    timestamp: int
    seller: str
    buyer: str
    price_eth: float
    price_usd: Optional[float]
    currency_kind: CurrencyKind
    currency_symbol: str
    marketplace_id: str
    image_url: Optional[str] = None
    log_index: Optional[int] = None

    @classmethod
    def from_match(
        cls, transfer: Transfer, price: CachedPrice, eth_price_usd: Optional[float]
    ) -> "EnrichedSale":
        return cls(
            tx_hash=transfer.tx_hash.lower(),
            token_id=transfer.token_id,
            block_number=transfer.block_number,
            timestamp=transfer.timestamp,
            seller=transfer.from_addr,
            buyer=transfer.to_addr,
            price_eth=price.price_eth,
            price_usd=price.price_eth * eth_price_usd if eth_price_usd else None,
            currency_kind=classify_currency(price.currency_symbol),
            currency_symbol=price.currency_symbol,
            marketplace_id=price.marketplace_id,
            image_url=price.image_url,
            log_index=transfer.log_index,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "EnrichedSale":
        return cls(
            tx_hash=data["tx_hash"],
            token_id=data["token_id"],
            block_number=data["block_number"],
            timestamp=data["timestamp"],
            seller=data["seller"],
            buyer=data["buyer"],
            price_eth=data["price_eth"],
            price_usd=data.get("price_usd"),
            currency_kind=CurrencyKind(data["currency_kind"]),
            currency_symbol=data["currency_symbol"],
            marketplace_id=data["marketplace_id"],
            image_url=data.get("image_url"),
            log_index=data.get("log_index"),
        )


@dataclass
class EnrichmentResult:
    sales: list[EnrichedSale] = field(default_factory=list)
    unpriced: list[Transfer] = field(default_factory=list)
    cached_count: int = 0
    matched_count: int = 0
    total_uncached: int = 0
    events_fetched: int = 0

    @property
    def coverage(self) -> float:
        return self.matched_count / self.total_uncached if self.total_uncached else 1.0

    @property
    def gap(self) -> EnrichmentGap:
        """Priced vs candidate transfers across the whole batch, cache hits included."""
        priced = len(self.sales)
        return EnrichmentGap(total=priced + len(self.unpriced), matched=priced)


def build_event_map(events: Iterable[SaleEvent]) -> dict[str, SaleEvent]:
    """Lowercased tx hash -> event. Later events overwrite earlier ones."""
    return {event.tx_hash.lower(): event for event in events}


def price_from_event(tx_hash: str, event: SaleEvent) -> CachedPrice:
    return CachedPrice(
        tx_hash=tx_hash,
        price_eth=event.price_eth,
        currency_symbol=event.currency_symbol,
        marketplace_id=event.marketplace_id,
        image_url=event.image_url,
    )


class PriceEnricher:
    def __init__(
        self,
        marketplace: OpenSeaClient,
        price_store: PriceStore,
        *,
        max_pages: Optional[int] = None,
        page_size: Optional[int] = None,
    ):
        self.marketplace = marketplace
        self.price_store = price_store
        self.max_pages = max_pages or settings.ENRICHMENT_MAX_PAGES
        self.page_size = page_size or settings.ENRICHMENT_PAGE_SIZE

    async def _fetch_window(self, uncached: list[Transfer]) -> list[SaleEvent]:
        start = min(t.timestamp for t in uncached)
        end = max(t.timestamp for t in uncached)
        try:
            return await self.marketplace.fetch_sales(
                after=start - 1,
                before=end + 1,
                max_pages=self.max_pages,
                target_count=len(uncached) * EVENTS_PER_TRANSFER_TARGET,
                page_size=self.page_size,
            )
        except ProviderError as e:
            logger.warning(
                "Marketplace unavailable for %d uncached transfers, leaving them unpriced: %s",
                len(uncached),
                e,
            )
            return []

    async def enrich(
        self, transfers: Iterable[Transfer], eth_price_usd: Optional[float] = None
    ) -> EnrichmentResult:
        candidates = filter_to_sales_only(transfers)
        result = EnrichmentResult()
        if not candidates:
            return result

        # ── 1. Partition by price cache ──────────────────────────────────
        prices = await self.price_store.get_many(t.tx_hash for t in candidates)
        uncached = [t for t in candidates if t.tx_hash.lower() not in prices]
        result.cached_count = len(candidates) - len(uncached)
        result.total_uncached = len(uncached)

        # ── 2. Pull and match marketplace events ─────────────────────────
        if uncached:
            events = await self._fetch_window(uncached)
            result.events_fetched = len(events)
            event_map = build_event_map(events)

            new_prices: dict[str, CachedPrice] = {}
            for transfer in uncached:
                tx_hash = transfer.tx_hash.lower()
                event = event_map.get(tx_hash)
                if event is None:
                    continue
                new_prices[tx_hash] = price_from_event(tx_hash, event)
                result.matched_count += 1

            await self.price_store.put_many(new_prices.values())
            prices.update(new_prices)

        # ── 3. Emit ──────────────────────────────────────────────────────
        for transfer in candidates:
            price = prices.get(transfer.tx_hash.lower())
            if price is None:
                result.unpriced.append(transfer)
            else:
                result.sales.append(EnrichedSale.from_match(transfer, price, eth_price_usd))

        if result.total_uncached:
            check = validate_price_coverage(result.matched_count, result.total_uncached)
            log = logger.info if check.passed else logger.warning
            log(
                "Enrichment: %s; %d from cache, %d events fetched",
                check.message,
                result.cached_count,
                result.events_fetched,
            )
        return result


def transform_to_sale_records(sales: Iterable[EnrichedSale]) -> list[dict]:
    """JSON rows, newest first."""
    return [
        {
            "tx_hash": s.tx_hash,
            "token_id": s.token_id,
            "block_number": s.block_number,
            "timestamp": s.timestamp,
            "seller": s.seller,
            "buyer": s.buyer,
            "price_eth": s.price_eth,
            "price_usd": s.price_usd,
            "currency_kind": s.currency_kind.value,
            "currency_symbol": s.currency_symbol,
            "marketplace_id": s.marketplace_id,
            "image_url": s.image_url,
            "log_index": s.log_index,
        }
        for s in sorted(sales, key=lambda s: s.timestamp, reverse=True)
    ]
