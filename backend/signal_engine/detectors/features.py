"""Small candle features shared by several detectors."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from signal_engine.indicators import atr, ema, last
from signal_engine.models import Candle
from signal_engine.models.candle import closes, highs, lows, volumes


def volume_ratio(candles: Sequence[Candle], period: int = 20) -> float:
    """Last volume divided by the mean of the ``period`` volumes before it."""
    if len(candles) < period + 1:
        return float("nan")
    vols = volumes(candles)
    avg = float(np.mean(vols[-period - 1 : -1]))
    if avg <= 0:
        return float("nan")
    return float(vols[-1] / avg)


def body_ratio(candle: Candle) -> float:
    """Body size as a fraction of the candle's range (0 for doji or flat candles)."""
    rng = float(candle.range_size)
    if rng <= 0:
        return 0.0
    return float(candle.body_size) / rng


def last_atr(candles: Sequence[Candle], period: int = 14) -> float:
    if len(candles) < period:
        return float("nan")
    return last(atr(highs(candles), lows(candles), closes(candles), period))


def macd(values: np.ndarray, fast: int = 12, slow: int = 26, signal: int = 9) -> tuple[float, float]:
    """Latest (macd line, signal line); NaN when there is not enough data."""
    if len(values) < slow + signal:
        return float("nan"), float("nan")
    line = ema(values, fast) - ema(values, slow)
    valid = line[~np.isnan(line)]
    sig = ema(valid, signal)
    return float(line[-1]), last(sig)
