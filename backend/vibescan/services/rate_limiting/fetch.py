"""
Rate-limited, retrying JSON GET shared by every provider client.
"""

import asyncio
import logging
from typing import Any, Callable, Mapping, Optional

import aiohttp

from vibescan.core.config import settings
from vibescan.core.errors import ProviderError, ProviderUnavailable, RateLimitExceeded
from vibescan.services.rate_limiting.limiter import BaseRateLimiter
from vibescan.services.rate_limiting.retry import retry_async

logger = logging.getLogger(__name__)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds from a Retry-After header. HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class ResilientFetch:
    """
    One provider's HTTP pipeline:

        limiter.wait() -> GET with hard timeout -> classify -> retry or raise

    Every attempt, retries included, waits on the limiter. 429 and 5xx,
    timeouts and connection errors are retried with capped backoff; other
    4xx raise ``ProviderError`` immediately. After the last attempt the
    caller always sees a ``ProviderError`` subclass.
    """

    def __init__(
        self,
        name: str,
        limiter: BaseRateLimiter,
        *,
        headers: Optional[dict[str, str]] = None,
        timeout_sec: Optional[float] = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
    ):
        self.name = name
        self.limiter = limiter
        self.headers = headers or {}
        self.timeout_sec = timeout_sec if timeout_sec is not None else settings.HTTP_TIMEOUT_SEC
        self.max_retries = max_retries if max_retries is not None else settings.HTTP_MAX_RETRIES
        self.base_delay = base_delay if base_delay is not None else settings.HTTP_BACKOFF_BASE_SEC
        self.max_delay = max_delay if max_delay is not None else settings.HTTP_BACKOFF_MAX_SEC

        self.total_requests = 0
        self.total_failures = 0

    async def get_json(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        validate: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        """
        GET ``url`` and return the decoded JSON body.

        ``validate`` runs inside each attempt, so a provider that reports
        quota errors in a 200 body can raise ``RateLimitExceeded`` from it
        and be retried like an HTTP 429.
        """
        try:
            return await retry_async(
                self._attempt,
                url,
                params,
                validate,
                max_retries=self.max_retries,
                base_delay=self.base_delay,
                max_delay=self.max_delay,
            )
        except RateLimitExceeded as exc:
            self.total_failures += 1
            raise ProviderUnavailable(
                f"{self.name}: still rate limited after {self.max_retries + 1} attempts",
                provider=self.name,
                status=exc.status,
            ) from exc
        except ProviderError:
            self.total_failures += 1
            raise

    async def _attempt(
        self,
        url: str,
        params: Optional[Mapping[str, Any]],
        validate: Optional[Callable[[Any], Any]],
    ) -> Any:
        await self.limiter.wait()
        self.total_requests += 1

        try:
            status, headers, payload = await self._send(url, params)
        except asyncio.TimeoutError as exc:
            raise ProviderUnavailable(
                f"{self.name}: request timed out after {self.timeout_sec:.0f}s",
                provider=self.name,
            ) from exc
        except aiohttp.ClientError as exc:
            raise ProviderUnavailable(
                f"{self.name}: connection failed: {exc}", provider=self.name
            ) from exc

        if status == 429:
            raise RateLimitExceeded(
                f"{self.name}: rate limited (HTTP 429)",
                provider=self.name,
                retry_after=parse_retry_after(headers.get("Retry-After")),
            )
        if status >= 500:
            raise ProviderUnavailable(
                f"{self.name}: HTTP {status}", provider=self.name, status=status
            )
        if status >= 400:
            raise ProviderError(
                f"{self.name}: HTTP {status}: {str(payload)[:200]}",
                provider=self.name,
                status=status,
            )

        if validate is not None:
            return validate(payload)
        return payload

    async def _send(
        self, url: str, params: Optional[Mapping[str, Any]]
    ) -> tuple[int, Mapping[str, str], Any]:
        """Issue one GET. Returns (status, headers, body)."""
        timeout = aiohttp.ClientTimeout(total=self.timeout_sec)
        async with aiohttp.ClientSession(headers=self.headers, timeout=timeout) as session:
            async with session.get(url, params=params) as resp:
                if resp.status >= 400:
                    return resp.status, dict(resp.headers), await resp.text()
                try:
                    payload = await resp.json(content_type=None)
                except ValueError as exc:
                    raise ProviderError(
                        f"{self.name}: invalid JSON response", provider=self.name, status=resp.status
                    ) from exc
                return resp.status, dict(resp.headers), payload

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "total_requests": self.total_requests,
            "total_failures": self.total_failures,
            "limiter": self.limiter.get_stats(),
        }
