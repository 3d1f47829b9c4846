"""Rate limiting and bounded retry for upstream HTTP calls."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import httpx

from tradewise.errors import DataUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE = (httpx.HTTPError, asyncio.TimeoutError, ValueError)


class RateLimiter:
    """Simple rate limiter for API calls."""

    def __init__(self, calls_per_minute: int = 1200):
        self.calls_per_minute = calls_per_minute
        self.interval = 60.0 / calls_per_minute
        self.last_call = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait if necessary to respect rate limit."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            wait_time = self.last_call + self.interval - loop.time()
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self.last_call = loop.time()


async def with_retry(
    call: Callable[[], Awaitable[T]],
    *,
    description: str,
    attempts: int = 3,
    backoff: float = 0.5,
    timeout: float = 10.0,
) -> T:
    """Run ``call`` with a per-attempt timeout and exponential backoff.

    Raises:
        DataUnavailable: When every attempt failed or timed out.
    """
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(call(), timeout=timeout)
        except RETRYABLE as e:
            last_error = e
            if attempt < attempts:
                delay = backoff * (2 ** (attempt - 1))
                logger.debug(
                    f"{description}: attempt {attempt}/{attempts} failed ({e!r}), retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

    raise DataUnavailable(f"{description} failed after {attempts} attempts: {last_error!r}")
