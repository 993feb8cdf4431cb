"""
Exception taxonomy shared by the provider clients, caches and endpoint handlers.

    VibeScanError
    ├── ProviderError            non-retryable provider failure (4xx, bad payload)
    │   ├── RateLimitExceeded    HTTP 429 or provider quota message, retried
    │   └── ProviderUnavailable  5xx, timeout, connection error, retried then surfaced
    ├── NoDataFound              provider's empty-result sentinel, read as []
    ├── CacheUnavailable         cache backend failure, logged and swallowed
    └── EndpointTimeout          handler deadline passed with nothing cached
"""

from typing import Optional


class VibeScanError(Exception):
    """Base class for all application errors."""


class ProviderError(VibeScanError):
    def __init__(self, message: str, *, provider: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status = status


class RateLimitExceeded(ProviderError):
    def __init__(
        self,
        message: str,
        *,
        provider: str = "",
        status: Optional[int] = 429,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, provider=provider, status=status)
        self.retry_after = retry_after


class ProviderUnavailable(ProviderError):
    pass


class NoDataFound(VibeScanError):
    pass


class CacheUnavailable(VibeScanError):
    pass


class EndpointTimeout(VibeScanError):
    def __init__(self, key: str, timeout_sec: float):
        super().__init__(f"Timed out after {timeout_sec:.0f}s computing {key}")
        self.key = key
        self.timeout_sec = timeout_sec
