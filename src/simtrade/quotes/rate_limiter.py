"""Minimum-interval request pacing for the external quote source."""

import asyncio
import time

from simtrade.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Spaces consecutive requests at least ``min_interval`` seconds apart.

    Usage:
        limiter = RateLimiter(min_interval=1.0)
        # Before each request:
        await limiter.wait()
        bars = await source.fetch_daily_ohlcv(...)

    A lock serializes waiters so only one request is in flight per interval
    even if callers share the limiter.
    """

    def __init__(self, min_interval: float = 1.0) -> None:
        self.min_interval = min_interval
        self._last_call: float | None = None
        self._lock = asyncio.Lock()

    async def wait(self) -> float:
        """Sleep until the next request may be sent. Returns seconds slept."""
        async with self._lock:
            slept = 0.0
            if self._last_call is not None and self.min_interval > 0:
                elapsed = time.monotonic() - self._last_call
                remaining = self.min_interval - elapsed
                if remaining > 0:
                    logger.debug("rate_limit_wait", seconds=round(remaining, 3))
                    await asyncio.sleep(remaining)
                    slept = remaining
            self._last_call = time.monotonic()
            return slept

    def reset(self) -> None:
        self._last_call = None
