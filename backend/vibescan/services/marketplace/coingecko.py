"""
ETH/USD price feed from CoinGecko.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from vibescan.core.config import settings
from vibescan.core.errors import ProviderError
from vibescan.services.rate_limiting import ResilientFetch, get_rate_limiter

logger = logging.getLogger(__name__)

# The feed updates about once a minute upstream
PRICE_MAX_AGE_SEC = 60


@dataclass(frozen=True)
class EthPrice:
    usd: float
    usd_24h_change: float
    fetched_at: float


class CoinGeckoClient:
    def __init__(self, fetcher: Optional[ResilientFetch] = None, base_url: Optional[str] = None):
        self.fetcher = fetcher or ResilientFetch(
            "coingecko",
            get_rate_limiter(
                "coingecko", settings.COINGECKO_RATE_LIMIT, settings.RATE_LIMIT_SAFETY_MARGIN
            ),
        )
        self.base_url = (base_url or settings.COINGECKO_BASE_URL).rstrip("/")
        self._last: Optional[EthPrice] = None

    async def get_eth_price(self) -> EthPrice:
        """
        Current ETH price. A recent reading is reused; if the provider fails,
        the last known price is returned instead of raising.
        """
        if self._last is not None and time.time() - self._last.fetched_at < PRICE_MAX_AGE_SEC:
            return self._last

        try:
            data = await self.fetcher.get_json(
                f"{self.base_url}/simple/price",
                {"ids": "ethereum", "vs_currencies": "usd", "include_24hr_change": "true"},
            )
            ethereum = data["ethereum"]
            price = EthPrice(
                usd=float(ethereum["usd"]),
                usd_24h_change=float(ethereum.get("usd_24h_change") or 0.0),
                fetched_at=time.time(),
            )
        except (ProviderError, KeyError, TypeError, ValueError) as e:
            if self._last is None:
                raise ProviderError(f"ETH price unavailable: {e}", provider="coingecko") from e
            logger.warning("ETH price fetch failed (%s), using last known %.2f", e, self._last.usd)
            return self._last

        self._last = price
        return price
