"""Tests for the pipeline service ticks and the daily summary."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from signal_engine.models import SignalTier
from signal_engine.signal_filter import SignalFilter
from tradewise.feature_flags import FeatureFlags
from tradewise.services.pipeline import PipelineService


@pytest.fixture
def flags():
    store = MagicMock()
    store.snapshot = MagicMock(return_value=FeatureFlags())
    return store


@pytest.fixture
def signal_filter(t0):
    return SignalFilter(clock=lambda: t0)


@pytest.fixture
def service(flags, signal_filter, t0):
    analysis = MagicMock()
    analysis.run_cycle = AsyncMock()
    order_monitor = MagicMock()
    order_monitor.scan_all = AsyncMock(return_value={"traders": 0})
    dispatcher = MagicMock()
    dispatcher.enqueue = MagicMock(return_value=True)
    return PipelineService(
        symbols=["BTCUSDT"],
        analysis=analysis,
        lifecycle=MagicMock(),
        order_monitor=order_monitor,
        market_data=MagicMock(),
        signal_filter=signal_filter,
        signal_repo=MagicMock(),
        order_repo=MagicMock(),
        trader_repo=MagicMock(),
        dispatcher=dispatcher,
        flags=flags,
        alert_recipients=["a@example.com"],
        daily_summary_hour_utc=8,
        clock=lambda: t0,
    )


async def accept_low_priority(signal_filter, make_scored, *symbols):
    await signal_filter.filter_for_dispatch(
        [make_scored(symbol=s, tier=SignalTier.LEVEL_3, score=4) for s in symbols]
    )


class TestTicks:
    @pytest.mark.asyncio
    async def test_analysis_respects_flag(self, service, flags):
        flags.snapshot.return_value = FeatureFlags(analysis_enabled=False)
        await service.analysis_tick()
        service.analysis.run_cycle.assert_not_awaited()

        flags.snapshot.return_value = FeatureFlags()
        await service.analysis_tick()
        service.analysis.run_cycle.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_order_scan_respects_flag(self, service, flags):
        flags.snapshot.return_value = FeatureFlags(copy_trading_enabled=False)
        await service.order_scan_tick()
        service.order_monitor.scan_all.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reset_filter_state(self, service, signal_filter, make_scored):
        await accept_low_priority(signal_filter, make_scored, "BTCUSDT")

        with patch("tradewise.services.pipeline.clear_filter_state", new=AsyncMock()) as clear:
            stats = await service.reset_filter_state()

        clear.assert_awaited_once()
        assert stats["today_count"] == 0


class TestDailySummary:
    @pytest.mark.asyncio
    async def test_not_before_configured_hour(self, service, signal_filter, make_scored, t0):
        await accept_low_priority(signal_filter, make_scored, "BTCUSDT")

        assert await service.send_daily_summary_if_due(t0.replace(hour=7)) is False
        service.dispatcher.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_sent_once_per_day(self, service, signal_filter, make_scored, t0):
        await accept_low_priority(signal_filter, make_scored, "BTCUSDT", "ETHUSDT")

        assert await service.send_daily_summary_if_due(t0) is True
        notification = service.dispatcher.enqueue.call_args.args[0]
        assert "2 low-priority" in notification.subject

        await accept_low_priority(signal_filter, make_scored, "SOLUSDT")
        assert await service.send_daily_summary_if_due(t0 + timedelta(hours=1)) is False
        assert await service.send_daily_summary_if_due(t0 + timedelta(days=1)) is True
        assert service.dispatcher.enqueue.call_count == 2

    @pytest.mark.asyncio
    async def test_empty_backlog(self, service, t0):
        assert await service.send_daily_summary_if_due(t0) is False
        service.dispatcher.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_disabled_by_flag(self, service, flags, signal_filter, make_scored, t0):
        flags.snapshot.return_value = FeatureFlags(daily_summary_enabled=False)
        await accept_low_priority(signal_filter, make_scored, "BTCUSDT")

        assert await service.send_daily_summary_if_due(t0) is False
        assert signal_filter.drain_low_priority() == []


class TestTraderPerformance:
    @pytest.mark.asyncio
    async def test_delegates_to_order_repo(self, service):
        service.order_repo.performance = AsyncMock(return_value=[])

        assert await service.trader_performance(4) == []
        service.order_repo.performance.assert_awaited_once_with(4)
