"""
Token Bucket Rate Limiter
=========================
Shared by every Gateway call. Capacity and refill rate both equal the
configured calls-per-second; refill is computed lazily from elapsed time on
each acquisition, no background timer.
"""

import asyncio
import math
import time
from typing import Awaitable, Callable


class TokenBucket:
    """
    Usage:
        limiter = TokenBucket(calls_per_second=10)
        await limiter.acquire()
    """

    def __init__(
        self,
        calls_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        # Capacity equals the rate; below 1 a whole token never fits.
        if calls_per_second < 1:
            raise ValueError("calls_per_second must be at least 1")
        self.capacity = float(calls_per_second)
        self.refill_rate = float(calls_per_second)
        self.tokens = self.capacity
        self._clock = clock
        self._sleep = sleep
        self._last_refill = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self._last_refill = now

    def wait_time_ms(self) -> int:
        """Milliseconds until one whole token has accrued."""
        return math.ceil((1 - self.tokens) / self.refill_rate * 1000)

    async def acquire(self) -> None:
        """Consume one token, suspending until one is available."""
        # Waiters queue on the lock so tokens are handed out in arrival order.
        async with self._lock:
            while True:
                self._refill()
                if self.tokens >= 1:
                    self.tokens -= 1
                    return
                await self._sleep(self.wait_time_ms() / 1000)
