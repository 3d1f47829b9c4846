"""Key price-level contest.

Support and resistance come from the prior 20 daily candles. On the latest
1h candle three patterns are recognised, strongest first:

- stop hunt: wick through the level, close back inside (fade the sweep)
- breakout hold: close beyond the level by a quarter ATR on heavy volume
- rejection: a long wick into the level from inside the range
"""

from __future__ import annotations

import math

from signal_engine.detectors.features import last_atr, volume_ratio
from signal_engine.detectors.protocol import clamp_strength
from signal_engine.detectors.registry import register_detector
from signal_engine.models import Candle, DetectorSignal, Direction, MultiTimeframeCandles

DAILY_LOOKBACK = 20
HOURLY_MIN = 30
PROXIMITY_ATR = 0.5
BREAKOUT_ATR = 0.25
BREAKOUT_VOLUME = 1.5

STOP_HUNT_STRENGTH = 0.8
BREAKOUT_STRENGTH = 0.7
REJECTION_STRENGTH = 0.6


@register_detector("key_level")
class KeyLevelDetector:
    """Reaction of price at daily support/resistance."""

    name = "key_level"
    timeframes = ("1d", "1h")

    def detect(self, symbol: str, data: MultiTimeframeCandles) -> DetectorSignal | None:
        daily = data.get("1d")
        hourly = data.get("1h")
        if len(daily) < DAILY_LOOKBACK + 1 or len(hourly) < HOURLY_MIN:
            return None

        prior = daily[-DAILY_LOOKBACK - 1 : -1]
        support = min(float(c.low) for c in prior)
        resistance = max(float(c.high) for c in prior)
        hourly_atr = last_atr(hourly)
        if math.isnan(hourly_atr) or hourly_atr <= 0:
            return None

        candle = hourly[-1]
        found = (
            self._stop_hunt(candle, support, resistance)
            or self._breakout(hourly, candle, support, resistance, hourly_atr)
            or self._rejection(candle, support, resistance, hourly_atr)
        )
        if found is None:
            return None

        direction, pattern, strength, level = found
        return DetectorSignal(
            model=self.name,
            symbol=symbol,
            direction=direction,
            strength=clamp_strength(strength),
            reason=f"key_level:{direction.value.lower()}:{pattern}:level={level:.8g}",
            timeframe="1h",
        )

    @staticmethod
    def _stop_hunt(candle: Candle, support: float, resistance: float):
        low, high, close = float(candle.low), float(candle.high), float(candle.close)
        if low < support < close:
            return Direction.BUY, "stop_hunt", STOP_HUNT_STRENGTH, support
        if high > resistance > close:
            return Direction.SELL, "stop_hunt", STOP_HUNT_STRENGTH, resistance
        return None

    @staticmethod
    def _breakout(hourly, candle: Candle, support: float, resistance: float, atr_value: float):
        close = float(candle.close)
        ratio = volume_ratio(hourly)
        if math.isnan(ratio) or ratio < BREAKOUT_VOLUME:
            return None
        if close > resistance + BREAKOUT_ATR * atr_value:
            return Direction.BUY, "breakout", BREAKOUT_STRENGTH, resistance
        if close < support - BREAKOUT_ATR * atr_value:
            return Direction.SELL, "breakout", BREAKOUT_STRENGTH, support
        return None

    @staticmethod
    def _rejection(candle: Candle, support: float, resistance: float, atr_value: float):
        low, high = float(candle.low), float(candle.high)
        body_low = float(min(candle.open, candle.close))
        body_high = float(max(candle.open, candle.close))
        body = max(body_high - body_low, 1e-12)

        lower_wick = body_low - low
        upper_wick = high - body_high
        if abs(low - support) <= PROXIMITY_ATR * atr_value and lower_wick > 2 * body:
            return Direction.BUY, "rejection", REJECTION_STRENGTH, support
        if abs(high - resistance) <= PROXIMITY_ATR * atr_value and upper_wick > 2 * body:
            return Direction.SELL, "rejection", REJECTION_STRENGTH, resistance
        return None
