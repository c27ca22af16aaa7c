"""
Token Bucket Rate Limiter - One global request-rate ceiling per session.

Every fetch path (crawl loop, discovery probes, deferred script analysis)
acquires a token from the same limiter instance, so the ceiling holds no
matter which component issues the request.

Design Pattern: Token bucket with reservation + adaptive slowdown
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Optional

import structlog


@dataclass
class RateLimitConfig:
    """Configuration for rate limiter"""
    requests_per_second: Optional[float] = 10.0  # None = unlimited
    burst_size: int = 1          # 1 = evenly spaced requests (smoothing)
    speedup_threshold: int = 10  # Success count before trying to speed up
    speedup_factor: float = 0.9  # Factor to multiply interval when speeding up
    slowdown_factor_429: float = 2.0  # Factor for 429 errors
    slowdown_factor_5xx: float = 1.5  # Factor for 5xx errors
    max_slowdown: float = 10.0   # Interval never exceeds base interval * this


class TokenBucketRateLimiter:
    """
    Shared token-bucket limiter.

    Key features:
    1. Reservation - callers that find the bucket empty reserve the next free
       slot and sleep until it, so concurrent callers queue up fairly
    2. Smoothing - with burst_size=1 requests are evenly spaced
    3. Adaptive throttling - slows down on 429/5xx, recovers on success streaks

    Example:
        >>> limiter = TokenBucketRateLimiter(RateLimitConfig(requests_per_second=5))
        >>> await limiter.acquire()  # Wait for a token before the request
        >>> limiter.on_success()
        >>> limiter.on_error(status_code=429)
    """

    def __init__(self, config: Optional[RateLimitConfig] = None):
        """
        Initialize the rate limiter.

        Args:
            config: Rate limit configuration (uses defaults if None)
        """
        self.config = config or RateLimitConfig()

        rate = self.config.requests_per_second
        self.base_interval = (1.0 / rate) if rate else 0.0
        self.current_interval = self.base_interval
        self.capacity = max(1, self.config.burst_size)

        self.tokens = float(self.capacity)
        self.last_refill = time.monotonic()

        self.error_count = 0
        self.success_count = 0
        self.request_count = 0
        self.total_wait = 0.0

        self.logger = structlog.get_logger(__name__)

        self.logger.info(
            "rate_limiter_initialized",
            requests_per_second=rate,
            burst_size=self.capacity,
        )

    @property
    def unlimited(self) -> bool:
        return self.base_interval == 0.0

    def _reserve(self) -> float:
        """
        Take one token, returning how long the caller must wait for it.

        Runs without suspension, so the reservation is atomic under the
        event loop.
        """
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.last_refill = now

        self.tokens = min(
            float(self.capacity),
            self.tokens + elapsed / self.current_interval,
        )
        self.tokens -= 1.0

        if self.tokens >= 0:
            return 0.0
        return -self.tokens * self.current_interval

    async def acquire(self):
        """Wait until a request may be issued"""
        self.request_count += 1

        if self.unlimited:
            return

        delay = self._reserve()
        if delay > 0:
            self.total_wait += delay
            self.logger.debug(
                "rate_limit_wait",
                delay=f"{delay:.3f}s",
                interval=f"{self.current_interval:.3f}s",
            )
            await asyncio.sleep(delay)

    def on_success(self):
        """
        Record a successful request and potentially speed back up.

        The interval never drops below the configured base interval.
        """
        self.success_count += 1
        self.error_count = 0

        if self.unlimited or self.current_interval <= self.base_interval:
            return

        if self.success_count >= self.config.speedup_threshold:
            old_interval = self.current_interval
            self.current_interval = max(
                self.base_interval,
                self.current_interval * self.config.speedup_factor,
            )
            self.success_count = 0

            self.logger.info(
                "rate_limit_speedup",
                old_interval=f"{old_interval:.3f}s",
                new_interval=f"{self.current_interval:.3f}s",
            )

    def on_error(self, status_code: int):
        """
        Record an error response and slow down accordingly.

        Args:
            status_code: HTTP status code of the error
        """
        self.error_count += 1
        self.success_count = 0

        if self.unlimited:
            return

        old_interval = self.current_interval

        if status_code == 429:
            self.current_interval *= self.config.slowdown_factor_429
        elif status_code >= 500:
            self.current_interval *= self.config.slowdown_factor_5xx
        else:
            return

        self.current_interval = min(
            self.base_interval * self.config.max_slowdown,
            self.current_interval,
        )

        self.logger.warning(
            "rate_limit_slowdown",
            status_code=status_code,
            old_interval=f"{old_interval:.3f}s",
            new_interval=f"{self.current_interval:.3f}s",
        )

    def reset(self):
        """Reset the rate limiter to initial state"""
        self.current_interval = self.base_interval
        self.tokens = float(self.capacity)
        self.last_refill = time.monotonic()
        self.error_count = 0
        self.success_count = 0
        self.request_count = 0
        self.total_wait = 0.0

        self.logger.info("rate_limiter_reset")

    def get_stats(self) -> dict:
        """
        Get rate limiter statistics.

        Returns:
            Dictionary with current statistics
        """
        return {
            "current_interval": f"{self.current_interval:.3f}s",
            "error_count": self.error_count,
            "success_count": self.success_count,
            "request_count": self.request_count,
            "total_wait": f"{self.total_wait:.2f}s",
            "config": {
                "requests_per_second": self.config.requests_per_second,
                "burst_size": self.capacity,
            },
        }
