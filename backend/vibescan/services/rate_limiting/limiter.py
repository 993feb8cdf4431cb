"""
Rate limiter for provider requests using a FIFO waiter queue.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Optional


class BaseRateLimiter(ABC):
    """Interface shared by the real limiter and the no-op used in tests."""

    @abstractmethod
    async def wait(self) -> None:
        """Resolve once it is safe to issue the next call."""
        ...

    def get_stats(self) -> dict:
        return {}


class RateLimiter(BaseRateLimiter):
    """
    Serializes outbound calls to a quota-constrained provider.

    Every caller appends a future to one queue; a single scheduled callback
    releases waiters in arrival order, at least ``min_interval`` seconds
    apart. The interval is derived from the provider budget reduced by a
    safety margin:

        min_interval = 1 / (calls_per_second * (1 - safety_margin))

    Usage:
        limiter = RateLimiter(calls_per_second=3)
        await limiter.wait()
        # Make API request
    """

    def __init__(self, calls_per_second: float, safety_margin: float = 0.15, name: str = "default"):
        """
        Args:
            calls_per_second: Provider budget
            safety_margin: Fraction of the budget left unused (0.15 = 15%)
            name: Label used in stats
        """
        if calls_per_second <= 0:
            raise ValueError("calls_per_second must be positive")
        if not 0 <= safety_margin < 1:
            raise ValueError("safety_margin must be in [0, 1)")

        self.name = name
        self.calls_per_second = calls_per_second
        self.min_interval = 1.0 / (calls_per_second * (1.0 - safety_margin))

        self._queue: deque[asyncio.Future] = deque()
        self._processing = False
        self._last_call: Optional[float] = None
        self.total_calls = 0

    async def wait(self) -> None:
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        self._queue.append(waiter)

        if not self._processing:
            self._processing = True
            self._process_next()

        await waiter

    def _process_next(self) -> None:
        # Waiters cancelled while queued are dropped
        while self._queue and self._queue[0].done():
            self._queue.popleft()

        if not self._queue:
            self._processing = False
            return

        now = time.monotonic()
        if self._last_call is not None:
            delay = self._last_call + self.min_interval - now
            if delay > 0:
                asyncio.get_running_loop().call_later(delay, self._process_next)
                return

        waiter = self._queue.popleft()
        self._last_call = now
        self.total_calls += 1
        waiter.set_result(None)

        self._process_next()

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "queue_length": sum(1 for w in self._queue if not w.done()),
            "processing": self._processing,
            "min_interval_sec": round(self.min_interval, 4),
            "last_call": self._last_call,
            "total_calls": self.total_calls,
        }


class NoopRateLimiter(BaseRateLimiter):
    """Limiter that never waits. Substituted in tests."""

    def __init__(self):
        self.total_calls = 0

    async def wait(self) -> None:
        self.total_calls += 1

    def get_stats(self) -> dict:
        return {"name": "noop", "queue_length": 0, "total_calls": self.total_calls}


# Global rate limiters, one per provider quota
_limiters: dict[str, RateLimiter] = {}


def get_rate_limiter(name: str, calls_per_second: float, safety_margin: float = 0.15) -> RateLimiter:
    """Get or create a named rate limiter."""
    if name not in _limiters:
        _limiters[name] = RateLimiter(calls_per_second, safety_margin, name=name)
    return _limiters[name]


def get_all_limiter_stats() -> dict[str, dict]:
    return {name: limiter.get_stats() for name, limiter in _limiters.items()}
