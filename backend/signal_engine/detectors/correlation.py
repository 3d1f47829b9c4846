"""Cross-asset correlation: relative-value mean reversion against a benchmark.

When a symbol normally moves with the benchmark (return correlation above
0.5) but the price ratio between them has stretched beyond two standard
deviations, expect the ratio to revert: rich symbols are sold, cheap ones
bought.
"""

from __future__ import annotations

import numpy as np

from signal_engine.detectors.protocol import clamp_strength
from signal_engine.detectors.registry import register_detector
from signal_engine.indicators import log_returns, zscore
from signal_engine.models import DetectorSignal, Direction, MultiTimeframeCandles
from signal_engine.models.candle import closes

TIMEFRAME = "4h"
MIN_CANDLES = 60
ZSCORE_WINDOW = 50
ZSCORE_ENTRY = 2.0
MIN_CORRELATION = 0.5


def _aligned_closes(data: MultiTimeframeCandles) -> tuple[np.ndarray, np.ndarray]:
    own = {c.open_time: float(c.close) for c in data.get(TIMEFRAME)}
    bench = {c.open_time: float(c.close) for c in data.benchmark.get(TIMEFRAME, [])}
    times = sorted(own.keys() & bench.keys())
    return (
        np.array([own[t] for t in times], dtype=np.float64),
        np.array([bench[t] for t in times], dtype=np.float64),
    )


@register_detector("correlation")
class CorrelationDetector:
    """Ratio z-score against the benchmark asset."""

    name = "correlation"
    timeframes = (TIMEFRAME,)

    def detect(self, symbol: str, data: MultiTimeframeCandles) -> DetectorSignal | None:
        if not data.benchmark_symbol or data.benchmark_symbol == symbol:
            return None

        own, bench = _aligned_closes(data)
        if len(own) < MIN_CANDLES or np.any(bench <= 0) or np.any(own <= 0):
            return None

        window = slice(-ZSCORE_WINDOW, None)
        corr = float(np.corrcoef(log_returns(own[window]), log_returns(bench[window]))[0, 1])
        if not np.isfinite(corr) or corr < MIN_CORRELATION:
            return None

        z = zscore(own / bench, ZSCORE_WINDOW)
        if not np.isfinite(z) or abs(z) < ZSCORE_ENTRY:
            return None

        direction = Direction.SELL if z > 0 else Direction.BUY
        strength = min(1.0, 0.5 + (abs(z) - ZSCORE_ENTRY) / 2) * corr

        return DetectorSignal(
            model=self.name,
            symbol=symbol,
            direction=direction,
            strength=clamp_strength(strength),
            reason=(
                f"correlation:{direction.value.lower()}:vs={data.benchmark_symbol}"
                f":z={z:.2f}:corr={corr:.2f}"
            ),
            timeframe=TIMEFRAME,
        )
