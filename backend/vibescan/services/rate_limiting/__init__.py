"""
Rate limiting, retry and resilient fetch utilities for provider requests.
"""

from vibescan.services.rate_limiting.limiter import (
    BaseRateLimiter,
    NoopRateLimiter,
    RateLimiter,
    get_all_limiter_stats,
    get_rate_limiter,
)
from vibescan.services.rate_limiting.retry import retry_with_backoff, retry_async
from vibescan.services.rate_limiting.fetch import ResilientFetch

__all__ = [
    "BaseRateLimiter",
    "NoopRateLimiter",
    "RateLimiter",
    "ResilientFetch",
    "get_all_limiter_stats",
    "get_rate_limiter",
    "retry_with_backoff",
    "retry_async",
]
