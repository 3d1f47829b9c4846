"""Detection models.

Importing this package registers all six built-in detectors.
"""

from signal_engine.detectors.protocol import Detector, clamp_strength
from signal_engine.detectors.registry import (
    create_all_detectors,
    create_detector,
    list_detectors,
    register_detector,
)

# Register built-in detectors
from signal_engine.detectors import (  # noqa: F401
    correlation,
    institutional_flow,
    key_level,
    sentiment_extreme,
    trend_momentum,
    volatility_breakout,
)

__all__ = [
    "Detector",
    "clamp_strength",
    "create_all_detectors",
    "create_detector",
    "list_detectors",
    "register_detector",
    "required_timeframes",
]


def required_timeframes(detectors) -> list[str]:
    """Union of the timeframes the given detectors read, in a stable order."""
    seen: dict[str, None] = {}
    for detector in detectors:
        for tf in detector.timeframes:
            seen.setdefault(tf, None)
    return list(seen)
