"""Technical indicators on float arrays.

Every function takes a sequence of floats (or a numpy array) and returns a
numpy array of the same length, padded with NaN where the lookback is not
yet satisfied. Callers convert candles with signal_engine.models.candle
helpers (closes/highs/lows/volumes).
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

ArrayLike = Sequence[float] | np.ndarray


def _as_array(values: ArrayLike) -> np.ndarray:
    return np.asarray(values, dtype=np.float64)


def ema(values: ArrayLike, period: int) -> np.ndarray:
    """Exponential moving average seeded with the SMA of the first ``period`` values."""
    arr = _as_array(values)
    result = np.full_like(arr, np.nan)
    if len(arr) < period:
        return result

    multiplier = 2.0 / (period + 1)
    result[period - 1] = np.mean(arr[:period])
    for i in range(period, len(arr)):
        result[i] = arr[i] * multiplier + result[i - 1] * (1 - multiplier)
    return result


def sma(values: ArrayLike, period: int) -> np.ndarray:
    """Simple moving average."""
    arr = _as_array(values)
    result = np.full_like(arr, np.nan)
    if len(arr) < period:
        return result

    cumsum = np.cumsum(np.insert(arr, 0, 0.0))
    result[period - 1:] = (cumsum[period:] - cumsum[:-period]) / period
    return result


def rolling_std(values: ArrayLike, period: int) -> np.ndarray:
    """Population standard deviation over a rolling window."""
    arr = _as_array(values)
    result = np.full_like(arr, np.nan)
    if len(arr) < period:
        return result

    for i in range(period - 1, len(arr)):
        result[i] = np.std(arr[i - period + 1 : i + 1])
    return result


def highest(values: ArrayLike, period: int) -> np.ndarray:
    arr = _as_array(values)
    result = np.full_like(arr, np.nan)
    if len(arr) < period:
        return result

    for i in range(period - 1, len(arr)):
        result[i] = np.max(arr[i - period + 1 : i + 1])
    return result


def lowest(values: ArrayLike, period: int) -> np.ndarray:
    arr = _as_array(values)
    result = np.full_like(arr, np.nan)
    if len(arr) < period:
        return result

    for i in range(period - 1, len(arr)):
        result[i] = np.min(arr[i - period + 1 : i + 1])
    return result


def true_range(highs: ArrayLike, lows: ArrayLike, closes: ArrayLike) -> np.ndarray:
    h = _as_array(highs)
    l = _as_array(lows)
    c = _as_array(closes)
    if len(h) == 0:
        return np.array([], dtype=np.float64)

    prev_close = np.concatenate(([c[0]], c[:-1]))
    tr = np.maximum(h - l, np.maximum(np.abs(h - prev_close), np.abs(l - prev_close)))
    tr[0] = h[0] - l[0]
    return tr


def atr(highs: ArrayLike, lows: ArrayLike, closes: ArrayLike, period: int = 14) -> np.ndarray:
    """Average True Range with Wilder smoothing."""
    tr = true_range(highs, lows, closes)
    result = np.full_like(tr, np.nan)
    if len(tr) < period:
        return result

    result[period - 1] = np.mean(tr[:period])
    alpha = 1.0 / period
    for i in range(period, len(tr)):
        result[i] = alpha * tr[i] + (1 - alpha) * result[i - 1]
    return result


def rsi(values: ArrayLike, period: int = 14) -> np.ndarray:
    """Relative Strength Index (Wilder)."""
    arr = _as_array(values)
    result = np.full_like(arr, np.nan)
    if len(arr) <= period:
        return result

    deltas = np.diff(arr)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)
    avg_gain = np.mean(gains[:period])
    avg_loss = np.mean(losses[:period])

    def _value(g: float, l: float) -> float:
        if l == 0:
            return 100.0 if g > 0 else 50.0
        return 100.0 - 100.0 / (1.0 + g / l)

    result[period] = _value(avg_gain, avg_loss)
    for i in range(period + 1, len(arr)):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        result[i] = _value(avg_gain, avg_loss)
    return result


def bollinger(
    values: ArrayLike, period: int = 20, num_std: float = 2.0
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Bollinger bands as (upper, middle, lower)."""
    middle = sma(values, period)
    std = rolling_std(values, period)
    return middle + num_std * std, middle, middle - num_std * std


def log_returns(values: ArrayLike) -> np.ndarray:
    arr = _as_array(values)
    if len(arr) < 2:
        return np.array([], dtype=np.float64)
    return np.diff(np.log(arr))


def zscore(values: ArrayLike, period: int) -> float:
    """Z-score of the last value against the trailing ``period`` window (NaN if undefined)."""
    arr = _as_array(values)
    if len(arr) < period:
        return float("nan")
    window = arr[-period:]
    std = np.std(window)
    if std == 0:
        return 0.0
    return float((window[-1] - np.mean(window)) / std)


def percentile_rank(values: ArrayLike, value: float) -> float:
    """Fraction of finite ``values`` at or below ``value`` (0..1)."""
    arr = _as_array(values)
    arr = arr[np.isfinite(arr)]
    if len(arr) == 0:
        return float("nan")
    return float(np.sum(arr <= value) / len(arr))


def last(values: np.ndarray) -> float:
    """Last element as a float, NaN for empty arrays."""
    if len(values) == 0:
        return float("nan")
    return float(values[-1])
