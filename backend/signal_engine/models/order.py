"""Copy-trading order and trader watch models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict


class ActionType(str, Enum):
    """What a copy order did to the trader's position."""

    OPEN_LONG = "open-long"
    OPEN_SHORT = "open-short"
    CLOSE_LONG = "close-long"
    CLOSE_SHORT = "close-short"
    UNKNOWN = "unknown"


_ACTION_TYPES: dict[tuple[str, str], ActionType] = {
    ("BUY", "LONG"): ActionType.OPEN_LONG,
    ("SELL", "SHORT"): ActionType.OPEN_SHORT,
    ("SELL", "LONG"): ActionType.CLOSE_LONG,
    ("BUY", "SHORT"): ActionType.CLOSE_SHORT,
}


def derive_action_type(side: str | None, position_side: str | None) -> ActionType:
    """Map (side, position side) to an action type. Case-insensitive."""
    key = ((side or "").upper(), (position_side or "").upper())
    return _ACTION_TYPES.get(key, ActionType.UNKNOWN)


class CopyOrder(BaseModel):
    """An order placed by a followed trader."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    trader_id: int
    exchange: str = "BINANCE"
    order_id: str
    symbol: str
    side: str
    position_side: str
    executed_qty: Decimal
    avg_price: Decimal
    total_value: Decimal
    realized_pnl: Decimal | None = None
    action_type: ActionType
    order_time: datetime
    update_time: datetime | None = None

    @property
    def is_closing(self) -> bool:
        return self.action_type in (ActionType.CLOSE_LONG, ActionType.CLOSE_SHORT)


class TraderWatch(BaseModel):
    """A followed trader and its running order statistics."""

    id: int
    name: str
    portfolio_id: str
    enabled: bool = True
    monitor_interval_seconds: int = 60
    today_order_count: int = 0
    total_order_count: int = 0
    last_order_date: date | None = None
    last_order_time: datetime | None = None
    last_check_time: datetime | None = None


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    UNKNOWN = "UNKNOWN"


# Fewer closed-out orders than this and the record says little
MIN_ORDERS_FOR_RISK = 5


class TraderPerformance(BaseModel):
    """Realized-PnL summary of one trader's ingested orders.

    Orders without a realized PnL, or with exactly zero, count towards
    ``total_orders`` but are neither winners nor losers.
    """

    model_config = ConfigDict(frozen=True)

    trader_id: int
    trader_name: str
    total_orders: int = 0
    profitable_orders: int = 0
    unprofitable_orders: int = 0
    total_profit: Decimal = Decimal("0")
    total_loss: Decimal = Decimal("0")  # positive magnitude
    net_profit: Decimal = Decimal("0")
    win_rate: Decimal = Decimal("0")  # percent of total_orders
    profit_factor: Decimal | None = None  # None when there are no losses
    avg_win: Decimal = Decimal("0")
    avg_loss: Decimal = Decimal("0")
    largest_loss: Decimal = Decimal("0")
    first_order_time: datetime | None = None
    last_order_time: datetime | None = None
    risk_level: RiskLevel = RiskLevel.UNKNOWN

    @classmethod
    def from_totals(
        cls,
        trader_id: int,
        trader_name: str,
        total_orders: int = 0,
        profitable_orders: int = 0,
        unprofitable_orders: int = 0,
        total_profit: Decimal | None = None,
        total_loss: Decimal | None = None,
        largest_loss: Decimal | None = None,
        first_order_time: datetime | None = None,
        last_order_time: datetime | None = None,
    ) -> TraderPerformance:
        """Build the summary from per-trader SQL aggregates."""
        profit = total_profit or Decimal("0")
        loss = abs(total_loss or Decimal("0"))
        win_rate = Decimal("0")
        if total_orders:
            win_rate = (Decimal(profitable_orders) * 100 / total_orders).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )
        profit_factor = None
        if loss > 0:
            profit_factor = (profit / loss).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)

        stats = cls(
            trader_id=trader_id,
            trader_name=trader_name,
            total_orders=total_orders,
            profitable_orders=profitable_orders,
            unprofitable_orders=unprofitable_orders,
            total_profit=profit,
            total_loss=loss,
            net_profit=profit - loss,
            win_rate=win_rate,
            profit_factor=profit_factor,
            avg_win=_average(profit, profitable_orders),
            avg_loss=_average(loss, unprofitable_orders),
            largest_loss=abs(min(largest_loss or Decimal("0"), Decimal("0"))),
            first_order_time=first_order_time,
            last_order_time=last_order_time,
        )
        return stats.model_copy(update={"risk_level": stats.assess_risk()})

    def assess_risk(self) -> RiskLevel:
        if self.total_orders < MIN_ORDERS_FOR_RISK:
            return RiskLevel.UNKNOWN
        if self.net_profit < 0 or self.win_rate < 40:
            return RiskLevel.HIGH
        # No losses at all counts as an unbounded profit factor
        factor = self.profit_factor if self.profit_factor is not None else Decimal("Infinity")
        if self.win_rate < 60 and factor < Decimal("1.2"):
            return RiskLevel.MEDIUM
        if self.win_rate >= 50 and factor >= Decimal("1.5"):
            return RiskLevel.LOW
        return RiskLevel.MEDIUM


def _average(amount: Decimal, count: int) -> Decimal:
    if not count:
        return Decimal("0")
    return (amount / count).quantize(Decimal("0.00000001"), rounding=ROUND_HALF_UP)
