"""Candle (OHLCV) data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict

# Seconds per timeframe; cache TTLs and the detectors' lookbacks key off this.
TIMEFRAME_SECONDS: dict[str, int] = {
    "1m": 60,
    "3m": 180,
    "5m": 300,
    "15m": 900,
    "30m": 1800,
    "1h": 3600,
    "2h": 7200,
    "4h": 14400,
    "6h": 21600,
    "12h": 43200,
    "1d": 86400,
}


def timeframe_seconds(timeframe: str) -> int:
    """Return the length of one candle in seconds.

    Raises:
        ValueError: If the timeframe is unknown.
    """
    try:
        return TIMEFRAME_SECONDS[timeframe]
    except KeyError:
        raise ValueError(f"Unknown timeframe '{timeframe}'") from None


class Candle(BaseModel):
    """One interval of OHLCV data for a symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    timeframe: str
    open_time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def body_size(self) -> Decimal:
        """Absolute size of the candle body."""
        return abs(self.close - self.open)

    @property
    def range_size(self) -> Decimal:
        """Full range (high - low) of the candle."""
        return self.high - self.low


def closes(candles: Sequence[Candle]) -> np.ndarray:
    return np.array([float(c.close) for c in candles], dtype=np.float64)


def highs(candles: Sequence[Candle]) -> np.ndarray:
    return np.array([float(c.high) for c in candles], dtype=np.float64)


def lows(candles: Sequence[Candle]) -> np.ndarray:
    return np.array([float(c.low) for c in candles], dtype=np.float64)


def opens(candles: Sequence[Candle]) -> np.ndarray:
    return np.array([float(c.open) for c in candles], dtype=np.float64)


def volumes(candles: Sequence[Candle]) -> np.ndarray:
    return np.array([float(c.volume) for c in candles], dtype=np.float64)


@dataclass(frozen=True)
class MultiTimeframeCandles:
    """Candle sequences for one symbol across several timeframes.

    ``benchmark`` holds the same frames for a reference asset (e.g. BTCUSDT)
    so cross-asset models can compare against it. It is empty when the
    symbol is itself the benchmark or the benchmark could not be fetched.
    """

    symbol: str
    frames: dict[str, list[Candle]] = field(default_factory=dict)
    benchmark_symbol: str | None = None
    benchmark: dict[str, list[Candle]] = field(default_factory=dict)

    def get(self, timeframe: str) -> list[Candle]:
        """Return candles for a timeframe (newest last), empty if missing."""
        return self.frames.get(timeframe, [])

    def has(self, timeframe: str, min_len: int) -> bool:
        return len(self.frames.get(timeframe, [])) >= min_len

    def last_price(self, timeframe: str) -> Decimal | None:
        candles = self.frames.get(timeframe)
        if not candles:
            return None
        return candles[-1].close
