"""
Rate limiter implementation for block production RPC requests.
Uses token bucket algorithm with configurable rates and burst limits.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""
    requests_per_second: Optional[float] = None  # None or 0 disables limiting
    burst_limit: Optional[int] = None  # Defaults to one second worth of requests

    @property
    def enabled(self) -> bool:
        return bool(self.requests_per_second and self.requests_per_second > 0)

    @property
    def capacity(self) -> float:
        if self.burst_limit is not None:
            return float(max(1, self.burst_limit))
        if not self.enabled:
            return 1.0
        return float(max(1, math.ceil(self.requests_per_second)))


class RateLimiter:
    """
    Token bucket rate limiter for RPC requests.

    acquire() never fails; it suspends the caller until a token is available.
    Waiters are served in arrival order because the bucket lock is held while
    sleeping and asyncio.Lock wakes waiters FIFO.
    """

    def __init__(self, config: Optional[RateLimitConfig] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """
        Initialize rate limiter.

        Args:
            config: Rate limit configuration
            clock: Monotonic clock in seconds
            sleep: Coroutine used to wait for tokens
        """
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._sleep = sleep
        self.tokens = self.config.capacity
        self.last_update = clock()
        self.lock = asyncio.Lock()

        # Statistics
        self.stats = self._empty_stats()

    @classmethod
    def per_second(cls, requests_per_second: Optional[float], **kwargs) -> "RateLimiter":
        return cls(RateLimitConfig(requests_per_second=requests_per_second), **kwargs)

    @staticmethod
    def _empty_stats() -> Dict[str, float]:
        return {
            "total_requests": 0,
            "throttled_requests": 0,
            "total_wait_time": 0.0,
            "last_wait_time": 0.0,
        }

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self.last_update)
        self.last_update = now
        self.tokens = min(
            self.config.capacity,
            self.tokens + elapsed * self.config.requests_per_second
        )

    async def acquire(self) -> float:
        """
        Acquire permission to make a request.

        Returns:
            Seconds spent waiting for a token (0.0 when none was needed)
        """
        if not self.enabled:
            self.stats["total_requests"] += 1
            return 0.0

        waited = 0.0
        async with self.lock:
            self._refill()
            while self.tokens < 1.0:
                delay = (1.0 - self.tokens) / self.config.requests_per_second
                logger.debug(f"Rate limit reached, waiting {delay:.3f}s for a token")
                await self._sleep(delay)
                waited += delay
                self._refill()

            self.tokens -= 1.0
            self.stats["total_requests"] += 1
            self.stats["last_wait_time"] = waited
            if waited > 0:
                self.stats["throttled_requests"] += 1
                self.stats["total_wait_time"] += waited
        return waited

    def get_stats(self) -> Dict[str, float]:
        """Get current rate limiting statistics."""
        return {
            **self.stats,
            "current_tokens": self.tokens,
            "requests_per_second": self.config.requests_per_second or 0.0,
        }

    def reset_stats(self) -> None:
        """Reset rate limiting statistics."""
        self.stats = self._empty_stats()
