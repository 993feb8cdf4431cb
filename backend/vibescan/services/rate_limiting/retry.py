"""
Retry logic with capped exponential backoff for transient provider failures.
"""

import asyncio
import logging
from functools import wraps
from typing import Any, Callable, TypeVar

from vibescan.core.errors import ProviderError, ProviderUnavailable, RateLimitExceeded

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float = 2.0,
) -> float:
    """Delay before retry number ``attempt + 1`` (attempt is zero-based)."""
    return min(base_delay * (exponential_base ** attempt), max_delay)


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 3.0,
    exponential_base: float = 2.0,
    retry_on: tuple = (RateLimitExceeded, ProviderUnavailable),
):
    """
    Decorator for retrying async functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap
        exponential_base: Multiplier for exponential backoff
        retry_on: Tuple of exceptions to retry on

    A ``RateLimitExceeded`` carrying ``retry_after`` waits at least that
    long, still capped at ``max_delay``.

    Usage:
        @retry_with_backoff(max_retries=3)
        async def fetch_data():
            ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except retry_on as exc:
                    last_exception = exc

                    # Don't retry on client errors (4xx except 429)
                    if isinstance(exc, ProviderError) and exc.status is not None:
                        if 400 <= exc.status < 500 and exc.status != 429:
                            logger.debug(
                                "%s: Client error %d, not retrying",
                                func.__name__,
                                exc.status,
                            )
                            raise

                    if attempt < max_retries:
                        delay = compute_backoff(attempt, base_delay, max_delay, exponential_base)
                        if isinstance(exc, RateLimitExceeded) and exc.retry_after:
                            delay = max(delay, min(exc.retry_after, max_delay))
                        logger.debug(
                            "%s: Attempt %d/%d failed (%s), retrying in %.1fs",
                            func.__name__,
                            attempt + 1,
                            max_retries + 1,
                            type(exc).__name__,
                            delay,
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.warning(
                            "%s: All %d attempts failed: %s",
                            func.__name__,
                            max_retries + 1,
                            last_exception,
                        )

            raise last_exception

        return wrapper

    return decorator


async def retry_async(
    func: Callable[..., Any],
    *args,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 3.0,
    retry_on: tuple = (RateLimitExceeded, ProviderUnavailable),
    **kwargs,
) -> Any:
    """
    Programmatic retry function (alternative to decorator).

    Usage:
        result = await retry_async(fetch_page, url, max_retries=3)
    """
    retry_decorator = retry_with_backoff(
        max_retries=max_retries,
        base_delay=base_delay,
        max_delay=max_delay,
        retry_on=retry_on,
    )
    retried_func = retry_decorator(func)
    return await retried_func(*args, **kwargs)
