"""Signal data models: detector candidates, fusion results, scored and persisted signals."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Direction(str, Enum):
    """Trade direction."""

    BUY = "BUY"
    SELL = "SELL"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.BUY else -1

    @property
    def opposite(self) -> Direction:
        return Direction.SELL if self is Direction.BUY else Direction.BUY


class Decision(str, Enum):
    """Fusion decision."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"

    def to_direction(self) -> Direction | None:
        if self is Decision.HOLD:
            return None
        return Direction(self.value)


class SignalTier(str, Enum):
    """Signal quality bucket, LEVEL_1 is the best."""

    LEVEL_1 = "LEVEL_1"
    LEVEL_2 = "LEVEL_2"
    LEVEL_3 = "LEVEL_3"

    @property
    def rank(self) -> int:
        return int(self.value[-1])


class SignalStatus(str, Enum):
    """Signal lifecycle status.

    PENDING -> ACTIVE -> {CLOSED, EXPIRED}. PENDING may also go straight to a
    terminal state (manual close). Terminal states never change.
    """

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self in (SignalStatus.CLOSED, SignalStatus.EXPIRED)

    def can_transition_to(self, target: SignalStatus) -> bool:
        if self.is_terminal:
            return False
        if self is SignalStatus.PENDING:
            return target is not SignalStatus.PENDING
        return target.is_terminal


CREATABLE_STATUSES = (SignalStatus.PENDING, SignalStatus.ACTIVE)

_PNL_QUANT = Decimal("0.01")


def compute_pnl_percent(direction: Direction, entry_price: Decimal, final_price: Decimal) -> Decimal:
    """Signed percentage move from entry to final, positive when the trade made money."""
    if entry_price == 0:
        return Decimal("0")
    change = (final_price - entry_price) / entry_price * 100 * direction.sign
    return change.quantize(_PNL_QUANT, rounding=ROUND_HALF_UP)


class DetectorSignal(BaseModel):
    """Candidate emitted by a single detection model."""

    model_config = ConfigDict(frozen=True)

    model: str
    symbol: str
    direction: Direction
    strength: float = Field(ge=0.0, le=1.0)
    reason: str
    timeframe: str = ""


class FusionResult(BaseModel):
    """Outcome of fusing all candidates for one symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    decision: Decision
    aggregated_strength: float
    confidence: float
    reasoning: str
    regime: str
    buy_score: float = 0.0
    sell_score: float = 0.0
    contributors: tuple[str, ...] = ()
    entry_price: Decimal | None = None
    atr: float | None = None

    @property
    def is_actionable(self) -> bool:
        return self.decision is not Decision.HOLD


class ScoredSignal(BaseModel):
    """A fused signal after confirmation checks, scoring and tiering."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    direction: Direction
    origin: str
    entry_price: Decimal
    stop_loss: Decimal
    take_profit: Decimal
    score: int
    tier: SignalTier
    risk_reward: float
    confidence: float
    checks: dict[str, int] = Field(default_factory=dict)
    reason: str = ""
    regime: str = ""
    created_at: datetime

    @property
    def dedup_key(self) -> tuple[str, Direction]:
        return (self.symbol, self.direction)


class Signal(BaseModel):
    """Persisted trading signal."""

    id: int | None = None
    symbol: str
    direction: Direction
    origin: str
    entry_price: Decimal
    stop_loss: Decimal
    take_profit: Decimal
    score: int
    tier: SignalTier
    status: SignalStatus = SignalStatus.ACTIVE
    confidence: float = 0.0
    risk_reward: float = 0.0
    regime: str = ""
    reason: str = ""
    created_at: datetime
    outcome_at: datetime | None = None
    final_price: Decimal | None = None
    pnl_percent: Decimal | None = None
    notes: str | None = None

    @classmethod
    def from_scored(cls, scored: ScoredSignal, status: SignalStatus = SignalStatus.ACTIVE) -> Signal:
        return cls(
            symbol=scored.symbol,
            direction=scored.direction,
            origin=scored.origin,
            entry_price=scored.entry_price,
            stop_loss=scored.stop_loss,
            take_profit=scored.take_profit,
            score=scored.score,
            tier=scored.tier,
            status=status,
            confidence=scored.confidence,
            risk_reward=scored.risk_reward,
            regime=scored.regime,
            reason=scored.reason,
            created_at=scored.created_at,
        )

    def age(self, now: datetime) -> timedelta:
        return now - self.created_at

    def with_outcome(
        self,
        status: SignalStatus,
        final_price: Decimal | None,
        outcome_at: datetime,
        notes: str | None,
    ) -> Signal:
        """Return a copy moved to ``status``.

        Raises:
            ValueError: If the current status cannot move to ``status``.
        """
        if not self.status.can_transition_to(status):
            raise ValueError(f"Signal {self.id}: cannot move {self.status.value} -> {status.value}")
        update: dict[str, Any] = {"status": status}
        if status.is_terminal:
            update["outcome_at"] = outcome_at
            update["final_price"] = final_price
            update["notes"] = notes
            if final_price is not None:
                update["pnl_percent"] = compute_pnl_percent(self.direction, self.entry_price, final_price)
        return self.model_copy(update=update)
