"""In-process candle cache in front of the market-data provider.

Entries are keyed by (symbol, timeframe) and live for a TTL proportional to
the timeframe, so 1m candles go stale within seconds while 1d candles are
reused for hours. When a refresh fails, the previous entry keeps being
served for a grace window before callers see DataUnavailable.

Each key has its own lock: concurrent callers for the same key share one
upstream fetch, callers for different keys never wait on each other.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Protocol

from signal_engine.models import Candle, timeframe_seconds
from tradewise.errors import DataUnavailable

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str]

PRICE_TIMEFRAME = "1m"
MIN_TTL_SECONDS = 5.0


class CandleProvider(Protocol):
    async def get_candles(self, symbol: str, interval: str, limit: int) -> list[Candle]:
        ...


@dataclass
class _Entry:
    candles: list[Candle]
    limit: int
    fetched_at: float


class MarketDataCache:
    """TTL cache of candle sequences with stale-on-error fallback."""

    def __init__(
        self,
        provider: CandleProvider,
        ttl_ratio: float = 0.25,
        grace_multiplier: float = 3.0,
        fetch_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            provider: Upstream candle source
            ttl_ratio: TTL as a fraction of the timeframe length
            grace_multiplier: Grace window as a multiple of the TTL
            fetch_timeout: Upper bound (seconds) on one upstream fetch, retries included
            clock: Monotonic time source (seconds)
        """
        self.provider = provider
        self.ttl_ratio = ttl_ratio
        self.grace_multiplier = grace_multiplier
        self.fetch_timeout = fetch_timeout
        self._clock = clock

        self._entries: dict[CacheKey, _Entry] = {}
        self._locks: dict[CacheKey, asyncio.Lock] = {}

        self._hits = 0
        self._misses = 0
        self._stale_served = 0
        self._failures = 0

    def ttl_for(self, timeframe: str) -> float:
        return max(MIN_TTL_SECONDS, timeframe_seconds(timeframe) * self.ttl_ratio)

    def grace_for(self, timeframe: str) -> float:
        return self.ttl_for(timeframe) * self.grace_multiplier

    def _lock_for(self, key: CacheKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def get_candles(self, symbol: str, timeframe: str, limit: int = 200) -> list[Candle]:
        """Return up to ``limit`` candles, oldest first.

        Raises:
            DataUnavailable: If the refresh failed and no entry is within its grace window.
        """
        key = (symbol, timeframe)
        async with self._lock_for(key):
            entry = self._entries.get(key)
            now = self._clock()
            ttl = self.ttl_for(timeframe)

            if entry is not None and entry.limit >= limit and now - entry.fetched_at < ttl:
                self._hits += 1
                return entry.candles[-limit:]

            self._misses += 1
            try:
                candles = await asyncio.wait_for(
                    self.provider.get_candles(symbol, timeframe, limit),
                    timeout=self.fetch_timeout,
                )
                if not candles:
                    raise DataUnavailable(f"No candles returned for {symbol} {timeframe}")
            except Exception as e:
                self._failures += 1
                if entry is not None and now - entry.fetched_at < ttl + self.grace_for(timeframe):
                    self._stale_served += 1
                    logger.warning(
                        f"Candle refresh failed for {symbol} {timeframe}, serving cached data "
                        f"({now - entry.fetched_at:.0f}s old): {e}"
                    )
                    return entry.candles[-limit:]
                if isinstance(e, DataUnavailable):
                    raise
                raise DataUnavailable(f"Candle fetch failed for {symbol} {timeframe}: {e!r}") from e

            self._entries[key] = _Entry(candles=list(candles), limit=limit, fetched_at=self._clock())
            return list(candles[-limit:])

    async def get_multi_timeframe(
        self,
        symbol: str,
        timeframes: list[str],
        limit: int = 200,
    ) -> dict[str, list[Candle]]:
        """Fetch several timeframes concurrently; frames that fail are left out."""
        results = await asyncio.gather(
            *(self.get_candles(symbol, tf, limit) for tf in timeframes),
            return_exceptions=True,
        )
        frames: dict[str, list[Candle]] = {}
        for tf, result in zip(timeframes, results):
            if isinstance(result, BaseException):
                logger.warning(f"{symbol} {tf}: {result}")
                continue
            frames[tf] = result
        return frames

    async def get_price(self, symbol: str) -> Decimal | None:
        """Close of the latest 1m candle, or None if unavailable."""
        try:
            candles = await self.get_candles(symbol, PRICE_TIMEFRAME, 1)
        except DataUnavailable as e:
            logger.warning(f"No current price for {symbol}: {e}")
            return None
        return candles[-1].close if candles else None

    def cleanup(self) -> int:
        """Drop entries that are past TTL plus grace and can no longer be served.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if now - entry.fetched_at >= self.ttl_for(key[1]) + self.grace_for(key[1])
        ]
        for key in expired:
            del self._entries[key]
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                del self._locks[key]
        if expired:
            logger.info(f"Market data cache cleanup removed {len(expired)} entries")
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def stats(self) -> dict:
        """Hit/miss statistics."""
        total = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total > 0 else 0,
            "stale_served": self._stale_served,
            "failures": self._failures,
        }
