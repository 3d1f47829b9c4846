"""Technical indicators (pure math, no I/O)."""

from signal_engine.indicators.indicators import (
    atr,
    bollinger,
    ema,
    highest,
    last,
    log_returns,
    lowest,
    percentile_rank,
    rolling_std,
    rsi,
    sma,
    true_range,
    zscore,
)

__all__ = [
    "atr",
    "bollinger",
    "ema",
    "highest",
    "last",
    "log_returns",
    "lowest",
    "percentile_rank",
    "rolling_std",
    "rsi",
    "sma",
    "true_range",
    "zscore",
]
