"""Market regime classification from recent candle statistics."""

from __future__ import annotations

import math
from enum import Enum

import numpy as np

from signal_engine.indicators import atr, last, log_returns, sma
from signal_engine.models import MultiTimeframeCandles
from signal_engine.models.candle import closes, highs, lows

MIN_CANDLES = 50
PRIMARY_TIMEFRAME = "1h"

ATR_PERIOD = 14
ATR_RECENT = 5
ATR_EXPANSION = 1.5
VOL_RECENT = 20
VOL_EXPANSION = 1.8

TREND_DEV_SLOW = 0.015  # distance from SMA50
TREND_DEV_FAST = 0.01  # distance from SMA20
EFFICIENCY_WINDOW = 20
MIN_EFFICIENCY = 0.3


class MarketRegime(str, Enum):
    TRENDING_UP = "TRENDING_UP"
    TRENDING_DOWN = "TRENDING_DOWN"
    RANGING = "RANGING"
    VOLATILE = "VOLATILE"
    UNKNOWN = "UNKNOWN"


def efficiency_ratio(values: np.ndarray, window: int = EFFICIENCY_WINDOW) -> float:
    """Net move over path length for the last ``window`` bars (0 = chop, 1 = straight line)."""
    if len(values) <= window:
        return float("nan")
    segment = values[-window - 1 :]
    path = float(np.sum(np.abs(np.diff(segment))))
    if path == 0:
        return 0.0
    return abs(float(segment[-1] - segment[0])) / path


def _is_volatile(candles, values: np.ndarray) -> bool:
    atr_series = atr(highs(candles), lows(candles), values, ATR_PERIOD)
    valid = atr_series[~np.isnan(atr_series)]
    if len(valid) > ATR_RECENT * 2:
        recent = float(np.mean(valid[-ATR_RECENT:]))
        baseline = float(np.mean(valid[:-ATR_RECENT]))
        if baseline > 0 and recent > ATR_EXPANSION * baseline:
            return True

    returns = log_returns(values)
    if len(returns) > VOL_RECENT * 2:
        recent_vol = float(np.std(returns[-VOL_RECENT:]))
        baseline_vol = float(np.std(returns[:-VOL_RECENT]))
        if baseline_vol > 0 and recent_vol > VOL_EXPANSION * baseline_vol:
            return True
    return False


def detect_regime(
    symbol: str,
    data: MultiTimeframeCandles,
    timeframe: str = PRIMARY_TIMEFRAME,
) -> MarketRegime:
    """Classify the current regime for ``symbol``.

    Volatility expansion is checked before trend, so a violent move is
    VOLATILE rather than a trend.
    """
    candles = data.get(timeframe)
    if len(candles) < MIN_CANDLES:
        return MarketRegime.UNKNOWN

    values = closes(candles)
    if _is_volatile(candles, values):
        return MarketRegime.VOLATILE

    price = float(values[-1])
    slow = last(sma(values, 50))
    fast = last(sma(values, 20))
    if math.isnan(slow) or math.isnan(fast) or slow <= 0 or fast <= 0:
        return MarketRegime.UNKNOWN

    dev_slow = (price - slow) / slow
    dev_fast = (price - fast) / fast
    efficiency = efficiency_ratio(values)
    persistent = not math.isnan(efficiency) and efficiency >= MIN_EFFICIENCY

    if persistent and dev_slow > TREND_DEV_SLOW and dev_fast > TREND_DEV_FAST:
        return MarketRegime.TRENDING_UP
    if persistent and dev_slow < -TREND_DEV_SLOW and dev_fast < -TREND_DEV_FAST:
        return MarketRegime.TRENDING_DOWN
    return MarketRegime.RANGING
