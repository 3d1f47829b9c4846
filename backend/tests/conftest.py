"""Shared fixtures: synthetic candles and signals."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from signal_engine.models import (
    Candle,
    Direction,
    ScoredSignal,
    Signal,
    SignalStatus,
    SignalTier,
    timeframe_seconds,
)

T0 = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)


def build_candles(
    closes,
    symbol: str = "BTCUSDT",
    timeframe: str = "1h",
    volumes=None,
    spread: float = 0.002,
    end: datetime = T0,
) -> list[Candle]:
    """Candles whose open is the previous close, ending at ``end``."""
    step = timedelta(seconds=timeframe_seconds(timeframe))
    start = end - step * (len(closes) - 1)
    candles = []
    prev = closes[0]
    for i, close in enumerate(closes):
        open_ = prev
        high = max(open_, close) * (1 + spread)
        low = min(open_, close) * (1 - spread)
        volume = volumes[i] if volumes is not None else 100.0
        candles.append(
            Candle(
                symbol=symbol,
                timeframe=timeframe,
                open_time=start + step * i,
                open=Decimal(str(round(open_, 6))),
                high=Decimal(str(round(high, 6))),
                low=Decimal(str(round(low, 6))),
                close=Decimal(str(round(close, 6))),
                volume=Decimal(str(volume)),
            )
        )
        prev = close
    return candles


def trend(n: int, start: float = 100.0, step: float = 0.004) -> list[float]:
    """Geometric series of closes moving ``step`` per bar."""
    return [start * (1 + step) ** i for i in range(n)]


@pytest.fixture
def make_candles():
    return build_candles


@pytest.fixture
def make_trend():
    return trend


def build_scored(
    symbol: str = "BTCUSDT",
    direction: Direction = Direction.BUY,
    tier: SignalTier = SignalTier.LEVEL_1,
    score: int = 9,
    confidence: float = 0.7,
    created_at: datetime = T0,
) -> ScoredSignal:
    entry = Decimal("100")
    if direction is Direction.BUY:
        stop, target = Decimal("95"), Decimal("110")
    else:
        stop, target = Decimal("105"), Decimal("90")
    return ScoredSignal(
        symbol=symbol,
        direction=direction,
        origin="trend_momentum",
        entry_price=entry,
        stop_loss=stop,
        take_profit=target,
        score=score,
        tier=tier,
        risk_reward=2.0,
        confidence=confidence,
        created_at=created_at,
    )


@pytest.fixture
def make_scored():
    return build_scored


def build_signal(
    signal_id: int = 1,
    symbol: str = "BTCUSDT",
    direction: Direction = Direction.BUY,
    status: SignalStatus = SignalStatus.ACTIVE,
    created_at: datetime = T0,
) -> Signal:
    return Signal.from_scored(build_scored(symbol, direction, created_at=created_at), status).model_copy(
        update={"id": signal_id}
    )


@pytest.fixture
def make_signal():
    return build_signal


@pytest.fixture
def t0():
    return T0
