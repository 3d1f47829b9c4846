"""Signal lifecycle rules: when an ACTIVE signal closes or expires."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from signal_engine.models import Direction, Signal, SignalStatus

DEFAULT_HORIZON = timedelta(hours=24)

NOTE_TAKE_PROFIT = "take profit hit"
NOTE_STOP_LOSS = "stop loss hit"
NOTE_EXPIRED = "expired: horizon reached without stop or target"
NOTE_MANUAL = "manually closed"


@dataclass(frozen=True)
class Transition:
    status: SignalStatus
    final_price: Decimal
    notes: str


def price_trigger(signal: Signal, price: Decimal) -> str | None:
    """Which threshold, if any, ``price`` has reached for this signal."""
    if signal.direction is Direction.BUY:
        if price <= signal.stop_loss:
            return NOTE_STOP_LOSS
        if price >= signal.take_profit:
            return NOTE_TAKE_PROFIT
    else:
        if price >= signal.stop_loss:
            return NOTE_STOP_LOSS
        if price <= signal.take_profit:
            return NOTE_TAKE_PROFIT
    return None


def evaluate(
    signal: Signal,
    price: Decimal | None,
    now: datetime,
    horizon: timedelta = DEFAULT_HORIZON,
) -> Transition | None:
    """Decide the next state of an ACTIVE signal.

    Returns None when nothing changes: the signal is not ACTIVE, no price
    is available (check deferred), or no threshold or horizon is crossed.
    Expiry takes precedence over a threshold crossing on the same check.
    """
    if signal.status is not SignalStatus.ACTIVE or price is None:
        return None

    if signal.age(now) > horizon:
        return Transition(SignalStatus.EXPIRED, price, NOTE_EXPIRED)

    note = price_trigger(signal, price)
    if note is not None:
        return Transition(SignalStatus.CLOSED, price, note)
    return None
