"""Large-participant flow proxy.

Looks at the heavy-volume 1h candles of the last day: when most of them
close in one direction, someone big is leaning that way. The daily trend
(close vs SMA20) either confirms the lean or discounts it.
"""

from __future__ import annotations

import math

import numpy as np

from signal_engine.detectors.protocol import clamp_strength
from signal_engine.detectors.registry import register_detector
from signal_engine.indicators import last, sma
from signal_engine.models import DetectorSignal, Direction, MultiTimeframeCandles
from signal_engine.models.candle import closes, volumes

WINDOW = 24
BASELINE = 48
HEAVY_MULTIPLIER = 1.5
MIN_HEAVY = 3
BIAS_THRESHOLD = 0.6
DAILY_DISAGREE_FACTOR = 0.7


@register_detector("institutional_flow")
class InstitutionalFlowDetector:
    """Directional bias of heavy-volume candles."""

    name = "institutional_flow"
    timeframes = ("1h", "1d")

    def detect(self, symbol: str, data: MultiTimeframeCandles) -> DetectorSignal | None:
        hourly = data.get("1h")
        if len(hourly) < BASELINE:
            return None

        vols = volumes(hourly)
        baseline = float(np.mean(vols[-BASELINE:]))
        if baseline <= 0:
            return None

        recent = hourly[-WINDOW:]
        heavy = [c for c in recent if float(c.volume) > HEAVY_MULTIPLIER * baseline]
        if len(heavy) < MIN_HEAVY:
            return None

        bullish = sum(1 for c in heavy if c.is_bullish)
        ratio = bullish / len(heavy)
        if ratio > BIAS_THRESHOLD:
            direction = Direction.BUY
        elif ratio < 1 - BIAS_THRESHOLD:
            direction = Direction.SELL
        else:
            return None

        bias = abs(ratio - 0.5) * 2
        participation = min(1.0, len(heavy) / 6)
        strength = bias * (0.5 + 0.5 * participation)

        daily_note = "1d_na"
        daily = data.get("1d")
        if len(daily) >= 20:
            daily_sma = last(sma(closes(daily), 20))
            if not math.isnan(daily_sma):
                agrees = (float(daily[-1].close) > daily_sma) == (direction is Direction.BUY)
                daily_note = "1d_agree" if agrees else "1d_against"
                if not agrees:
                    strength *= DAILY_DISAGREE_FACTOR

        return DetectorSignal(
            model=self.name,
            symbol=symbol,
            direction=direction,
            strength=clamp_strength(strength),
            reason=(
                f"institutional_flow:{direction.value.lower()}:"
                f"heavy={len(heavy)}:bull_ratio={ratio:.2f}:{daily_note}"
            ),
            timeframe="1h",
        )
