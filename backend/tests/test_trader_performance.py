"""Tests for the per-trader realized-PnL summary."""

from datetime import timedelta
from decimal import Decimal

from signal_engine.models import RiskLevel, TraderPerformance


def summary(**totals) -> TraderPerformance:
    return TraderPerformance.from_totals(1, "whale", **totals)


class TestTraderPerformance:
    def test_no_orders(self):
        stats = summary()

        assert stats.total_orders == 0
        assert stats.net_profit == Decimal("0")
        assert stats.win_rate == Decimal("0")
        assert stats.profit_factor is None
        assert stats.risk_level is RiskLevel.UNKNOWN

    def test_totals(self, t0):
        stats = summary(
            total_orders=8,
            profitable_orders=5,
            unprofitable_orders=2,
            total_profit=Decimal("300"),
            total_loss=Decimal("-120"),
            largest_loss=Decimal("-80"),
            first_order_time=t0,
            last_order_time=t0 + timedelta(days=3),
        )

        assert stats.total_loss == Decimal("120")
        assert stats.net_profit == Decimal("180")
        assert stats.win_rate == Decimal("62.50")
        assert stats.profit_factor == Decimal("2.5000")
        assert stats.avg_win == Decimal("60")
        assert stats.avg_loss == Decimal("60")
        assert stats.largest_loss == Decimal("80")
        assert stats.last_order_time - stats.first_order_time == timedelta(days=3)
        assert stats.risk_level is RiskLevel.LOW

    def test_only_winners_has_no_profit_factor(self):
        stats = summary(total_orders=5, profitable_orders=5, total_profit=Decimal("50"))

        assert stats.profit_factor is None
        assert stats.risk_level is RiskLevel.LOW

    def test_unrealized_orders_count_but_do_not_score(self):
        stats = summary(total_orders=10, profitable_orders=3, total_profit=Decimal("30"))

        assert stats.win_rate == Decimal("30.00")
        assert stats.unprofitable_orders == 0

    def test_risk_levels(self):
        assert summary(total_orders=4, profitable_orders=4, total_profit=Decimal("9")).risk_level is RiskLevel.UNKNOWN
        assert (
            summary(
                total_orders=10,
                profitable_orders=6,
                unprofitable_orders=4,
                total_profit=Decimal("10"),
                total_loss=Decimal("-20"),
            ).risk_level
            is RiskLevel.HIGH
        )
        assert (
            summary(
                total_orders=10,
                profitable_orders=3,
                unprofitable_orders=1,
                total_profit=Decimal("30"),
                total_loss=Decimal("-1"),
            ).risk_level
            is RiskLevel.HIGH
        )
        assert (
            summary(
                total_orders=10,
                profitable_orders=5,
                unprofitable_orders=5,
                total_profit=Decimal("55"),
                total_loss=Decimal("-50"),
            ).risk_level
            is RiskLevel.MEDIUM
        )
