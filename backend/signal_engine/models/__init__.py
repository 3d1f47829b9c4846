"""Data models."""

from signal_engine.models.candle import (
    Candle,
    MultiTimeframeCandles,
    TIMEFRAME_SECONDS,
    timeframe_seconds,
)
from signal_engine.models.config import (
    DEFAULT_MODEL_PRIORS,
    FilterConfig,
    FusionConfig,
    ScoringConfig,
)
from signal_engine.models.order import (
    ActionType,
    CopyOrder,
    RiskLevel,
    TraderPerformance,
    TraderWatch,
    derive_action_type,
)
from signal_engine.models.signal import (
    CREATABLE_STATUSES,
    Decision,
    DetectorSignal,
    Direction,
    FusionResult,
    ScoredSignal,
    Signal,
    SignalStatus,
    SignalTier,
    compute_pnl_percent,
)

__all__ = [
    "Candle",
    "MultiTimeframeCandles",
    "TIMEFRAME_SECONDS",
    "timeframe_seconds",
    "DEFAULT_MODEL_PRIORS",
    "FilterConfig",
    "FusionConfig",
    "ScoringConfig",
    "ActionType",
    "CopyOrder",
    "RiskLevel",
    "TraderPerformance",
    "TraderWatch",
    "derive_action_type",
    "CREATABLE_STATUSES",
    "Decision",
    "DetectorSignal",
    "Direction",
    "FusionResult",
    "ScoredSignal",
    "Signal",
    "SignalStatus",
    "SignalTier",
    "compute_pnl_percent",
]
