"""Detector protocol defining the interface all detection models implement.

This module provides:
- Detector: Runtime-checkable Protocol every detection model satisfies
- clamp_strength: helper to keep strengths inside [0, 1]
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from signal_engine.models import DetectorSignal, MultiTimeframeCandles


@runtime_checkable
class Detector(Protocol):
    """Protocol that all detection models must implement.

    A detector is stateless: ``detect`` is a pure function of its inputs and
    returns at most one candidate per call.
    """

    @property
    def name(self) -> str:
        """Unique model identifier (e.g., 'trend_momentum')."""
        ...

    @property
    def timeframes(self) -> tuple[str, ...]:
        """Timeframes this model reads from the candle mapping."""
        ...

    def detect(self, symbol: str, data: MultiTimeframeCandles) -> DetectorSignal | None:
        """Scan candles and optionally emit a candidate.

        Args:
            symbol: Trading pair.
            data: Candles for the symbol across timeframes.

        Returns:
            A DetectorSignal with strength in [0, 1], or None.
        """
        ...


def clamp_strength(value: float) -> float:
    if value != value:  # NaN
        return 0.0
    return round(max(0.0, min(1.0, value)), 4)
