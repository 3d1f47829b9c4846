"""Trend/momentum alignment across 1h, 15m and 5m.

The 1h EMA stack (20 > 50 > 200, price beyond the 200) sets the direction.
15m momentum (RSI out of the extremes, a full-bodied candle and expanding
volume) and a 5m entry (close back on the trend side of EMA20) add
resonance. Strength grows with the number of agreeing frames and with how
far price has pulled away from the 200 EMA.
"""

from __future__ import annotations

import math

from signal_engine.detectors.features import body_ratio, macd, volume_ratio
from signal_engine.detectors.protocol import clamp_strength
from signal_engine.detectors.registry import register_detector
from signal_engine.indicators import ema, last, rsi
from signal_engine.models import DetectorSignal, Direction, MultiTimeframeCandles
from signal_engine.models.candle import closes

HOURLY_MIN = 200
FAST_MIN = 30
MIN_DEVIATION = 0.01
FULL_DEVIATION = 0.05


@register_detector("trend_momentum")
class TrendMomentumDetector:
    """Multi-timeframe EMA stack with momentum confirmation."""

    name = "trend_momentum"
    timeframes = ("1h", "15m", "5m")

    def detect(self, symbol: str, data: MultiTimeframeCandles) -> DetectorSignal | None:
        hourly = data.get("1h")
        if len(hourly) < HOURLY_MIN:
            return None

        direction, deviation = self._hourly_trend(hourly)
        if direction is None:
            return None

        factors = ["1h_stack"]
        if self._momentum_confirmed(data.get("15m"), direction):
            factors.append("15m_momentum")
        if self._entry_confirmed(data.get("5m"), direction):
            factors.append("5m_entry")

        hourly_closes = closes(hourly)
        line, signal_line = macd(hourly_closes)
        if not math.isnan(line) and not math.isnan(signal_line):
            if (line > signal_line) == (direction is Direction.BUY):
                factors.append("1h_macd")

        resonance = len(factors) / 4
        extension = min(1.0, deviation / FULL_DEVIATION)
        strength = clamp_strength(resonance * (0.6 + 0.4 * extension))

        return DetectorSignal(
            model=self.name,
            symbol=symbol,
            direction=direction,
            strength=strength,
            reason=f"trend_momentum:{direction.value.lower()}:" + "+".join(factors),
            timeframe="1h",
        )

    def _hourly_trend(self, hourly) -> tuple[Direction | None, float]:
        values = closes(hourly)
        e20 = last(ema(values, 20))
        e50 = last(ema(values, 50))
        e200 = last(ema(values, 200))
        price = float(values[-1])
        if any(math.isnan(v) for v in (e20, e50, e200)) or e200 <= 0:
            return None, 0.0

        deviation = abs(price - e200) / e200
        if deviation < MIN_DEVIATION:
            return None, deviation
        if e20 > e50 > e200 and price > e200:
            return Direction.BUY, deviation
        if e20 < e50 < e200 and price < e200:
            return Direction.SELL, deviation
        return None, deviation

    def _momentum_confirmed(self, candles, direction: Direction) -> bool:
        if len(candles) < FAST_MIN:
            return False
        current_rsi = last(rsi(closes(candles), 14))
        if math.isnan(current_rsi) or not 30 <= current_rsi <= 70:
            return False
        candle = candles[-1]
        in_direction = candle.is_bullish if direction is Direction.BUY else candle.is_bearish
        if not in_direction:
            return False
        ratio = volume_ratio(candles)
        return body_ratio(candle) > 0.6 and not math.isnan(ratio) and ratio >= 1.2

    def _entry_confirmed(self, candles, direction: Direction) -> bool:
        if len(candles) < FAST_MIN:
            return False
        values = closes(candles)
        e20 = last(ema(values, 20))
        if math.isnan(e20):
            return False
        price = float(values[-1])
        candle = candles[-1]
        if direction is Direction.BUY:
            return price > e20 and candle.is_bullish
        return price < e20 and candle.is_bearish
