"""Volatility breakout on 15m candles.

A close outside the Bollinger band counts only when backed by at least two
of: a preceding squeeze (band width in the bottom fifth of its recent
history), a large body relative to ATR, and a volume surge.
"""

from __future__ import annotations

import math

import numpy as np

from signal_engine.detectors.features import last_atr, volume_ratio
from signal_engine.detectors.protocol import clamp_strength
from signal_engine.detectors.registry import register_detector
from signal_engine.indicators import bollinger, percentile_rank
from signal_engine.models import DetectorSignal, Direction, MultiTimeframeCandles
from signal_engine.models.candle import closes

MIN_CANDLES = 120
SQUEEZE_LOOKBACK = 100
SQUEEZE_PERCENTILE = 0.2
BODY_ATR_MULTIPLIER = 0.8
VOLUME_SURGE = 2.0
MIN_FACTORS = 2


@register_detector("volatility_breakout")
class VolatilityBreakoutDetector:
    """Band breakout after compression."""

    name = "volatility_breakout"
    timeframes = ("15m",)

    def detect(self, symbol: str, data: MultiTimeframeCandles) -> DetectorSignal | None:
        candles = data.get("15m")
        if len(candles) < MIN_CANDLES:
            return None

        values = closes(candles)
        upper, middle, lower = bollinger(values, 20, 2.0)
        price = float(values[-1])
        if math.isnan(upper[-1]) or math.isnan(lower[-1]):
            return None

        if price > upper[-1]:
            direction = Direction.BUY
        elif price < lower[-1]:
            direction = Direction.SELL
        else:
            return None

        factors: list[str] = []

        width = (upper - lower) / middle
        history = width[-SQUEEZE_LOOKBACK - 1 : -1]
        prior_width = float(width[-2])
        if not math.isnan(prior_width) and np.isfinite(history).any():
            if percentile_rank(history, prior_width) <= SQUEEZE_PERCENTILE:
                factors.append("squeeze")

        current_atr = last_atr(candles[:-1])
        candle = candles[-1]
        in_direction = candle.is_bullish if direction is Direction.BUY else candle.is_bearish
        if in_direction and not math.isnan(current_atr) and current_atr > 0:
            if float(candle.body_size) > BODY_ATR_MULTIPLIER * current_atr:
                factors.append("wide_body")

        ratio = volume_ratio(candles)
        if not math.isnan(ratio) and ratio >= VOLUME_SURGE:
            factors.append("volume_surge")

        if len(factors) < MIN_FACTORS:
            return None

        return DetectorSignal(
            model=self.name,
            symbol=symbol,
            direction=direction,
            strength=clamp_strength(0.25 + 0.25 * len(factors)),
            reason=f"volatility_breakout:{direction.value.lower()}:" + "+".join(factors),
            timeframe="15m",
        )
