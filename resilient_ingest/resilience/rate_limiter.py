"""
Per-provider token bucket rate limiting.

Capacity regenerates continuously at requests_per_minute / 60 tokens per
second and every outbound request consumes one token. acquire() never
rejects: it suspends the caller until a token is available.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class TokenBucket:
    """
    Token bucket rate limiter for a single provider.

    The refill-then-decrement sequence runs under an asyncio.Lock, so
    concurrent callers against the same provider are served one at a time
    in lock order. A caller cancelled while waiting consumes no token.

    Invariant: 0 <= tokens <= capacity whenever the lock is not held.
    """

    def __init__(
        self,
        requests_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize a full bucket.

        Args:
            requests_per_minute: Bucket capacity and per-minute refill
            clock: Monotonic time source in seconds
            sleep: Coroutine used to wait for refill
        """
        if requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")

        self.capacity = float(requests_per_minute)
        self.refill_rate = self.capacity / 60.0  # tokens per second
        self._clock = clock
        self._sleep = sleep
        self._tokens = self.capacity
        self._last_refill = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    async def acquire(self) -> float:
        """
        Wait until a token is available, then consume it.

        Returns:
            Seconds spent waiting for refill (0.0 when a token was ready)
        """
        async with self._lock:
            self._refill()

            if self._tokens >= 1:
                self._tokens -= 1
                return 0.0

            wait_time = (1 - self._tokens) / self.refill_rate
            logger.debug(f"Rate limited, waiting {wait_time:.2f}s")
            await self._sleep(wait_time)

            self._refill()
            # Clamp: float rounding can leave tokens a hair under 1
            self._tokens = max(0.0, self._tokens - 1)
            return wait_time

    @property
    def available_tokens(self) -> float:
        """Tokens available right now (refills before reading)."""
        self._refill()
        return self._tokens

    def status(self) -> dict[str, float]:
        """Get current limiter status."""
        return {
            "capacity": self.capacity,
            "refill_per_second": self.refill_rate,
            "available": round(self.available_tokens, 3),
        }
