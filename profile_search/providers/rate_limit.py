"""Token-bucket rate limiting, one bucket per provider.

Buckets live in memory only: a restart starts every provider with a full
bucket.
"""

import logging
import time
from collections.abc import Callable

from profile_search.core.config import RateLimitConfig
from profile_search.core.errors import RateLimitedError

logger = logging.getLogger(__name__)


class TokenBucket:
    """Refills continuously at capacity / period_s tokens per second."""

    def __init__(
        self,
        capacity: int,
        period_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1 or period_s <= 0:
            msg = f"Invalid bucket: capacity={capacity}, period_s={period_s}"
            raise ValueError(msg)
        self._capacity = float(capacity)
        self._rate = capacity / period_s
        self._clock = clock
        self._tokens = float(capacity)
        self._updated = clock()

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def try_acquire(self) -> bool:
        """Take one token if available. Never waits."""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    def seconds_until_available(self) -> float:
        self._refill()
        if self._tokens >= 1.0:
            return 0.0
        return (1.0 - self._tokens) / self._rate

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._updated = now


class RateLimiter:
    """Gates provider calls by name.

    Usage::

        limiter = RateLimiter({"google": RateLimitConfig(capacity=100, period_s=86400)})
        limiter.acquire("google")  # raises RateLimitedError when empty
    """

    def __init__(
        self,
        limits: dict[str, RateLimitConfig],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._buckets = {
            name: TokenBucket(cfg.capacity, cfg.period_s, clock)
            for name, cfg in limits.items()
        }

    def acquire(self, provider: str) -> None:
        """Consume one token for provider, or raise RateLimitedError."""
        bucket = self._buckets.get(provider)
        if bucket is None:
            logger.debug("No rate limit for '%s' - allowing call", provider)
            return
        if not bucket.try_acquire():
            retry_after = bucket.seconds_until_available()
            logger.info(
                "Rate limit reached for '%s' - retry in %.1fs", provider, retry_after,
            )
            msg = f"Rate limit exceeded for {provider}"
            raise RateLimitedError(msg, provider, retry_after_s=retry_after)

    def remaining(self, provider: str) -> float | None:
        """Whole tokens left for provider, or None when unlimited."""
        bucket = self._buckets.get(provider)
        if bucket is None:
            return None
        return float(int(bucket.tokens))
