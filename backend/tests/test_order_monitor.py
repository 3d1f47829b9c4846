"""Tests for copy-trading order parsing and the order monitor."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from signal_engine.models import ActionType, TraderWatch
from tradewise.errors import DataUnavailable, ParseError, PersistenceError
from tradewise.feature_flags import FeatureFlags, UserFlags
from tradewise.services.order_monitor import OrderMonitor, order_identity, parse_order

ORDER_TIME_MS = 1717416000000  # 2024-06-03 12:00 UTC


def record(**overrides):
    base = {
        "symbol": "BTCUSDT",
        "side": "BUY",
        "positionSide": "LONG",
        "executedQty": "0.5",
        "avgPrice": "68000.10",
        "totalPnl": "0",
        "orderTime": ORDER_TIME_MS,
        "orderUpdateTime": ORDER_TIME_MS + 500,
    }
    base.update(overrides)
    return base


class InMemoryOrderRepository:
    """Order store with the same uniqueness as the copy_orders table: (exchange, order_id)."""

    def __init__(self):
        self.orders = {}

    async def insert_if_absent(self, order):
        key = (order.exchange, order.order_id)
        if key in self.orders:
            return False
        self.orders[key] = order
        return True


@pytest.fixture
def trader():
    return TraderWatch(id=1, name="whale", portfolio_id="P-100")


@pytest.fixture
def client():
    client = MagicMock()
    client.time_window = MagicMock(return_value=(0, 1))
    client.get_trader_orders = AsyncMock(return_value=[record()])
    return client


@pytest.fixture
def trader_repo(trader):
    repo = MagicMock()
    repo.get_enabled = AsyncMock(return_value=[trader])
    repo.record_new_orders = AsyncMock()
    repo.update_last_check = AsyncMock()
    return repo


@pytest.fixture
def subscribers():
    directory = MagicMock()
    directory.recipients_for = AsyncMock(return_value=["a@example.com", "b@example.com"])
    return directory


@pytest.fixture
def dispatcher():
    dispatcher = MagicMock()
    dispatcher.enqueue = MagicMock(return_value=True)
    return dispatcher


@pytest.fixture
def monitor(client, trader_repo, subscribers, dispatcher, t0):
    return OrderMonitor(
        client,
        InMemoryOrderRepository(),
        trader_repo,
        subscribers,
        dispatcher,
        clock=lambda: t0,
    )


class TestParseOrder:
    def test_parses_fields(self, trader):
        order = parse_order(record(orderId=555), trader)

        assert order.order_id == "555"
        assert order.trader_id == 1
        assert order.exchange == "BINANCE"
        assert order.action_type is ActionType.OPEN_LONG
        assert order.total_value == Decimal("0.5") * Decimal("68000.10")
        assert order.order_time == datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)
        assert order.update_time == order.order_time + timedelta(milliseconds=500)
        assert order.realized_pnl == Decimal("0")

    def test_action_types(self, trader):
        assert parse_order(record(side="sell", positionSide="short"), trader).action_type is ActionType.OPEN_SHORT
        assert parse_order(record(side="SELL", positionSide="LONG"), trader).action_type is ActionType.CLOSE_LONG
        assert parse_order(record(side="BUY", positionSide="SHORT"), trader).action_type is ActionType.CLOSE_SHORT
        assert parse_order(record(positionSide="BOTH"), trader).action_type is ActionType.UNKNOWN

    def test_composite_identity(self, trader):
        assert order_identity(record(), trader) == f"P-100:BTCUSDT:BUY:LONG:{ORDER_TIME_MS}"

    def test_identity_is_stable(self, trader):
        assert parse_order(record(), trader).order_id == parse_order(record(), trader).order_id

    def test_missing_optional_fields(self, trader):
        raw = record()
        for key in ("executedQty", "avgPrice", "totalPnl", "orderUpdateTime"):
            del raw[key]
        order = parse_order(raw, trader)

        assert order.executed_qty == Decimal("0")
        assert order.realized_pnl is None
        assert order.update_time is None

    @pytest.mark.parametrize(
        "raw",
        [
            record(symbol=None),
            record(orderTime=""),
            record(avgPrice="abc"),
            record(orderTime="yesterday"),
            ["not", "a", "dict"],
        ],
    )
    def test_malformed(self, trader, raw):
        with pytest.raises(ParseError):
            parse_order(raw, trader)


class TestOrderMonitor:
    @pytest.mark.asyncio
    async def test_new_order_stored_and_announced(self, monitor, trader_repo, dispatcher, t0):
        totals = await monitor.scan_all()

        assert totals["traders"] == 1
        assert totals["new"] == 1
        assert totals["notified"] == 1
        trader_repo.record_new_orders.assert_awaited_once()
        trader_repo.update_last_check.assert_awaited_once_with(1, t0)
        notification = dispatcher.enqueue.call_args.args[0]
        assert notification.subject == "[Copy-trade alert] whale new order - BTCUSDT open-long"
        assert notification.recipients == ("a@example.com", "b@example.com")

    @pytest.mark.asyncio
    async def test_rescan_is_idempotent(self, monitor, dispatcher):
        await monitor.scan_all()
        totals = await monitor.scan_all()

        assert totals["new"] == 0
        assert totals["duplicates"] == 1
        assert len(monitor.order_repo.orders) == 1
        assert dispatcher.enqueue.call_count == 1

    @pytest.mark.asyncio
    async def test_malformed_record_skipped(self, monitor, client):
        client.get_trader_orders.return_value = [record(symbol=""), record(orderId=2)]

        totals = await monitor.scan_all()

        assert totals["parse_errors"] == 1
        assert totals["new"] == 1

    @pytest.mark.asyncio
    async def test_failure_isolated_per_trader(self, monitor, client, trader_repo, trader):
        other = TraderWatch(id=2, name="shrimp", portfolio_id="P-200")
        trader_repo.get_enabled.return_value = [trader, other]

        async def orders(portfolio_id, start, end):
            if portfolio_id == "P-100":
                raise DataUnavailable("rate limited")
            return [record(orderId=9)]

        client.get_trader_orders.side_effect = orders
        totals = await monitor.scan_all()

        assert totals["failed"] == 1
        assert totals["new"] == 1
        assert trader_repo.update_last_check.await_count == 2

    @pytest.mark.asyncio
    async def test_no_traders(self, monitor, trader_repo, client):
        trader_repo.get_enabled.return_value = []

        assert await monitor.scan_all() == {"traders": 0}
        client.get_trader_orders.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_opted_out_user_not_notified(self, monitor, dispatcher):
        flags = FeatureFlags(users=[UserFlags(email="B@example.com", copy_trading_alerts=False)])

        await monitor.scan_all(flags)

        assert dispatcher.enqueue.call_args.args[0].recipients == ("a@example.com",)

    @pytest.mark.asyncio
    async def test_notifications_disabled(self, monitor, dispatcher):
        totals = await monitor.scan_all(FeatureFlags(notifications_enabled=False))

        assert totals["new"] == 1
        dispatcher.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_subscribers(self, monitor, subscribers, dispatcher):
        subscribers.recipients_for.return_value = []

        totals = await monitor.scan_all()

        assert totals["notified"] == 0
        dispatcher.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_shared_order_stored_once(self, monitor, client, trader_repo, dispatcher, trader):
        other = TraderWatch(id=2, name="shrimp", portfolio_id="P-200")
        trader_repo.get_enabled.return_value = [trader, other]
        client.get_trader_orders.return_value = [record(orderId=777)]
        monitor.concurrency = 1

        totals = await monitor.scan_all()

        assert totals["new"] == 1
        assert totals["duplicates"] == 1
        assert list(monitor.order_repo.orders) == [("BINANCE", "777")]
        trader_repo.record_new_orders.assert_awaited_once()
        assert trader_repo.record_new_orders.await_args.args[0] == 1
        assert dispatcher.enqueue.call_count == 1

    @pytest.mark.asyncio
    async def test_counter_failure_still_announces(self, monitor, trader_repo, dispatcher):
        trader_repo.record_new_orders.side_effect = [PersistenceError("connection reset"), None]

        first = await monitor.scan_all()
        second = await monitor.scan_all()

        assert first["new"] == 1
        assert first["notified"] == 1
        assert "failed" not in first
        assert second["duplicates"] == 1
        assert dispatcher.enqueue.call_count == 1

    @pytest.mark.asyncio
    async def test_subscriber_lookup_failure_isolated(self, monitor, subscribers, trader_repo, dispatcher):
        subscribers.recipients_for.side_effect = PersistenceError("timeout")

        totals = await monitor.scan_all()

        assert totals["new"] == 1
        assert totals["notified"] == 0
        trader_repo.record_new_orders.assert_awaited_once()
        dispatcher.enqueue.assert_not_called()
