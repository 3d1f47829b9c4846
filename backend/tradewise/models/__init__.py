"""Data models."""

from signal_engine.models import (
    ActionType,
    Candle,
    CopyOrder,
    Decision,
    DetectorSignal,
    Direction,
    FusionResult,
    MultiTimeframeCandles,
    ScoredSignal,
    Signal,
    SignalStatus,
    SignalTier,
    TraderPerformance,
    TraderWatch,
    derive_action_type,
)
from tradewise.models.query import SignalPage, SignalQuery

__all__ = [
    "ActionType",
    "Candle",
    "CopyOrder",
    "Decision",
    "DetectorSignal",
    "Direction",
    "FusionResult",
    "MultiTimeframeCandles",
    "ScoredSignal",
    "Signal",
    "SignalStatus",
    "SignalTier",
    "TraderPerformance",
    "TraderWatch",
    "derive_action_type",
    "SignalPage",
    "SignalQuery",
]
