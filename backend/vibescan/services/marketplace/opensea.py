"""
OpenSea v2 marketplace reader: sale events, listings, offers, collection stats.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from vibescan.core.config import settings
from vibescan.services.rate_limiting import ResilientFetch, get_rate_limiter

logger = logging.getLogger(__name__)

MARKETPLACE_ID = "opensea"
EVENTS_PAGE_LIMIT = 200
ORDERS_PAGE_LIMIT = 100


def to_eth(quantity: Any, decimals: int) -> float:
    """Scale an integer token quantity to whole units."""
    return float(Decimal(str(quantity)) / (Decimal(10) ** decimals))


@dataclass(frozen=True)
class SaleEvent:
    """A marketplace sale. May or may not have a matching on-chain Transfer."""

    tx_hash: str
    token_id: str
    seller: str
    buyer: str
    price_raw: int
    decimals: int
    currency_symbol: str
    timestamp: int
    marketplace_id: str = MARKETPLACE_ID
    image_url: Optional[str] = None

    @property
    def price_eth(self) -> float:
        return to_eth(self.price_raw, self.decimals)


@dataclass
class EventsPage:
    events: list[SaleEvent]
    next_cursor: Optional[str]
    raw_count: int


@dataclass(frozen=True)
class Listing:
    order_hash: str
    token_id: str
    price_eth: float
    currency_symbol: str
    maker: str


@dataclass(frozen=True)
class Offer:
    order_hash: str
    total_price_eth: float
    quantity: int
    currency_symbol: str

    @property
    def price_per_nft(self) -> float:
        return self.total_price_eth / self.quantity if self.quantity else 0.0


def parse_sale_event(raw: dict) -> Optional[SaleEvent]:
    """Return None unless the event has both a transaction and payment info."""
    tx_hash = raw.get("transaction")
    payment = raw.get("payment") or {}
    quantity = payment.get("quantity")
    if not tx_hash or quantity in (None, ""):
        return None

    nft = raw.get("nft") or {}
    try:
        price_raw = int(quantity)
        decimals = int(payment.get("decimals", 18))
    except (TypeError, ValueError):
        logger.debug("OpenSea: unparseable payment on %s: %s", tx_hash, payment)
        return None

    return SaleEvent(
        tx_hash=tx_hash.lower(),
        token_id=str(nft.get("identifier") or ""),
        seller=(raw.get("seller") or "").lower(),
        buyer=(raw.get("buyer") or "").lower(),
        price_raw=price_raw,
        decimals=decimals,
        currency_symbol=(payment.get("symbol") or "ETH").upper(),
        timestamp=int(raw.get("event_timestamp") or raw.get("closing_date") or 0),
        image_url=nft.get("image_url") or nft.get("display_image_url"),
    )


def parse_listing(raw: dict) -> Optional[Listing]:
    current = ((raw.get("price") or {}).get("current")) or {}
    value = current.get("value")
    if value in (None, ""):
        return None

    parameters = (raw.get("protocol_data") or {}).get("parameters") or {}
    offer_items = parameters.get("offer") or [{}]
    return Listing(
        order_hash=raw.get("order_hash", ""),
        token_id=str(offer_items[0].get("identifierOrCriteria", "")),
        price_eth=to_eth(value, int(current.get("decimals", 18))),
        currency_symbol=(current.get("currency") or "ETH").upper(),
        maker=(parameters.get("offerer") or "").lower(),
    )


def parse_offer(raw: dict) -> Optional[Offer]:
    price = raw.get("price") or {}
    value = price.get("value")
    if value in (None, ""):
        return None
    return Offer(
        order_hash=raw.get("order_hash", ""),
        total_price_eth=to_eth(value, int(price.get("decimals", 18))),
        quantity=int(raw.get("remaining_quantity") or 1),
        currency_symbol=(price.get("currency") or "WETH").upper(),
    )


class OpenSeaClient:
    """
    Usage:
        client = OpenSeaClient()
        sales = await client.fetch_sales(after=start_ts, before=end_ts)
    """

    def __init__(
        self,
        fetcher: Optional[ResilientFetch] = None,
        *,
        slug: Optional[str] = None,
        base_url: Optional[str] = None,
        page_delay: Optional[float] = None,
    ):
        headers = {"Accept": "application/json"}
        if settings.OPENSEA_API_KEY:
            headers["X-API-KEY"] = settings.OPENSEA_API_KEY
        self.fetcher = fetcher or ResilientFetch(
            "opensea",
            get_rate_limiter(
                "opensea", settings.OPENSEA_RATE_LIMIT, settings.RATE_LIMIT_SAFETY_MARGIN
            ),
            headers=headers,
        )
        self.slug = slug or settings.COLLECTION_SLUG
        self.base_url = (base_url or settings.OPENSEA_BASE_URL).rstrip("/")
        self.page_delay = (
            page_delay if page_delay is not None else settings.ENRICHMENT_PAGE_DELAY_SEC
        )

    # ── events ───────────────────────────────────────────────────────────

    async def get_events(
        self,
        event_type: str = "sale",
        limit: int = EVENTS_PAGE_LIMIT,
        cursor: Optional[str] = None,
        after: Optional[int] = None,
        before: Optional[int] = None,
    ) -> EventsPage:
        params: dict[str, Any] = {
            "event_type": event_type,
            "limit": min(limit, EVENTS_PAGE_LIMIT),
        }
        if cursor:
            params["next"] = cursor
        if after is not None:
            params["after"] = int(after)
        if before is not None:
            params["before"] = int(before)

        data = await self.fetcher.get_json(f"{self.base_url}/events/collection/{self.slug}", params)
        raw_events = data.get("asset_events") or []
        events = [e for e in (parse_sale_event(raw) for raw in raw_events) if e is not None]
        return EventsPage(events=events, next_cursor=data.get("next"), raw_count=len(raw_events))

    async def fetch_sales(
        self,
        after: Optional[int] = None,
        before: Optional[int] = None,
        *,
        max_pages: int = 20,
        target_count: Optional[int] = None,
        page_size: int = EVENTS_PAGE_LIMIT,
    ) -> list[SaleEvent]:
        """
        Page through sale events until the cursor runs out, ``max_pages``
        pages were read, or at least ``target_count`` events were collected.
        """
        sales: list[SaleEvent] = []
        cursor: Optional[str] = None
        pages = 0

        while True:
            page = await self.get_events(
                "sale", limit=page_size, cursor=cursor, after=after, before=before
            )
            sales.extend(page.events)
            pages += 1
            cursor = page.next_cursor

            if not cursor:
                break
            if pages >= max_pages:
                logger.info("OpenSea: stopped after %d pages (%d sales)", pages, len(sales))
                break
            if target_count is not None and len(sales) >= target_count:
                break
            await asyncio.sleep(self.page_delay)

        logger.debug("OpenSea: %d sales in %d pages", len(sales), pages)
        return sales

    # ── orders ───────────────────────────────────────────────────────────

    async def _paginate(self, path: str, key: str, limit: int, max_pages: int) -> list[dict]:
        items: list[dict] = []
        cursor: Optional[str] = None
        for _ in range(max_pages):
            params: dict[str, Any] = {"limit": min(limit - len(items), ORDERS_PAGE_LIMIT)}
            if cursor:
                params["next"] = cursor
            data = await self.fetcher.get_json(f"{self.base_url}{path}", params)
            items.extend(data.get(key) or [])
            cursor = data.get("next")
            if not cursor or len(items) >= limit:
                break
            await asyncio.sleep(self.page_delay)
        return items[:limit]

    async def get_listings(self, limit: int = 100, max_pages: int = 5) -> list[Listing]:
        raw = await self._paginate(
            f"/listings/collection/{self.slug}/all", "listings", limit, max_pages
        )
        return [listing for listing in (parse_listing(r) for r in raw) if listing is not None]

    async def get_offers(self, limit: int = 200, max_pages: int = 5) -> list[Offer]:
        raw = await self._paginate(f"/offers/collection/{self.slug}", "offers", limit, max_pages)
        return [offer for offer in (parse_offer(r) for r in raw) if offer is not None]

    # ── stats ────────────────────────────────────────────────────────────

    async def get_collection_stats(self) -> dict:
        """Raw ``/collections/{slug}/stats`` body: ``total`` and ``intervals``."""
        return await self.fetcher.get_json(f"{self.base_url}/collections/{self.slug}/stats")
