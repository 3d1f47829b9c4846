"""Sentiment extremes on 4h candles, traded contrarian.

A 0-100 greed/fear index is built from three price-derived proxies:
RSI, the percentile of the 6-bar change against its own history, and the
stretch from SMA20 measured in ATRs. Above 80 the crowd is greedy (sell),
below 20 it is fearful (buy). A volume climax on the last bar adds weight.
"""

from __future__ import annotations

import math

import numpy as np

from signal_engine.detectors.features import last_atr, volume_ratio
from signal_engine.detectors.protocol import clamp_strength
from signal_engine.detectors.registry import register_detector
from signal_engine.indicators import last, percentile_rank, rsi, sma
from signal_engine.models import DetectorSignal, Direction, MultiTimeframeCandles
from signal_engine.models.candle import closes

MIN_CANDLES = 60
CHANGE_BARS = 6
GREED_LEVEL = 80.0
FEAR_LEVEL = 20.0
STRETCH_ATR_FULL = 3.0
CLIMAX_VOLUME = 2.0


def sentiment_index(candles) -> float:
    """Greed/fear index in [0, 100], NaN when it cannot be computed."""
    values = closes(candles)
    current_rsi = last(rsi(values, 14))

    changes = values[CHANGE_BARS:] / values[:-CHANGE_BARS] - 1.0
    change_pct = percentile_rank(changes, float(changes[-1])) * 100

    mean = last(sma(values, 20))
    atr_value = last_atr(candles)
    if any(math.isnan(v) for v in (current_rsi, change_pct, mean, atr_value)) or atr_value <= 0:
        return float("nan")
    stretch = (float(values[-1]) - mean) / atr_value
    stretch_score = 50.0 + 50.0 * float(np.clip(stretch / STRETCH_ATR_FULL, -1.0, 1.0))

    return 0.4 * current_rsi + 0.3 * change_pct + 0.3 * stretch_score


@register_detector("sentiment_extreme")
class SentimentExtremeDetector:
    """Contrarian signal at greed/fear extremes."""

    name = "sentiment_extreme"
    timeframes = ("4h",)

    def detect(self, symbol: str, data: MultiTimeframeCandles) -> DetectorSignal | None:
        candles = data.get("4h")
        if len(candles) < MIN_CANDLES:
            return None

        index = sentiment_index(candles)
        if math.isnan(index):
            return None

        if index >= GREED_LEVEL:
            direction = Direction.SELL
            excess = index - GREED_LEVEL
            mood = "greed"
        elif index <= FEAR_LEVEL:
            direction = Direction.BUY
            excess = FEAR_LEVEL - index
            mood = "fear"
        else:
            return None

        strength = 0.5 + excess / 40
        ratio = volume_ratio(candles)
        climax = not math.isnan(ratio) and ratio >= CLIMAX_VOLUME
        if climax:
            strength += 0.15

        return DetectorSignal(
            model=self.name,
            symbol=symbol,
            direction=direction,
            strength=clamp_strength(strength),
            reason=(
                f"sentiment_extreme:{direction.value.lower()}:{mood}:index={index:.1f}"
                + (":climax" if climax else "")
            ),
            timeframe="4h",
        )
