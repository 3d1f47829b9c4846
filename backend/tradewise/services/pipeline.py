"""Pipeline service: the single entry point used by the scheduler and the API.

Scheduled ticks read the feature flags once and then call into the
analysis pipeline, lifecycle tracker, order monitor and cache. Manual
triggers call the same code directly, outside the single-flight guard;
record creation is atomic in the database, so an overlapping manual and
scheduled run cannot duplicate a signal or an order.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Callable

from signal_engine.models import Signal, TraderPerformance
from signal_engine.signal_filter import SignalFilter, utc_now
from tradewise.feature_flags import FeatureFlags, FeatureFlagStore
from tradewise.models import SignalPage, SignalQuery
from tradewise.services.analysis import AnalysisPipeline
from tradewise.services.lifecycle_tracker import SignalLifecycleTracker
from tradewise.services.market_data import MarketDataCache
from tradewise.services.notifications import NotificationDispatcher, render_daily_summary
from tradewise.services.order_monitor import OrderMonitor
from tradewise.services.scheduler import Scheduler
from tradewise.storage import CopyOrderRepository, SignalRepository, TraderWatchRepository
from tradewise.storage.filter_state_cache import clear_filter_state

logger = logging.getLogger(__name__)


class PipelineService:
    """Facade over the pipeline components."""

    def __init__(
        self,
        symbols: list[str],
        analysis: AnalysisPipeline,
        lifecycle: SignalLifecycleTracker,
        order_monitor: OrderMonitor,
        market_data: MarketDataCache,
        signal_filter: SignalFilter,
        signal_repo: SignalRepository,
        order_repo: CopyOrderRepository,
        trader_repo: TraderWatchRepository,
        dispatcher: NotificationDispatcher,
        flags: FeatureFlagStore,
        scheduler: Scheduler | None = None,
        alert_recipients: list[str] | None = None,
        daily_summary_hour_utc: int = 0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.symbols = symbols
        self.analysis = analysis
        self.lifecycle = lifecycle
        self.order_monitor = order_monitor
        self.market_data = market_data
        self.signal_filter = signal_filter
        self.signal_repo = signal_repo
        self.order_repo = order_repo
        self.trader_repo = trader_repo
        self.dispatcher = dispatcher
        self.flags = flags
        self.scheduler = scheduler
        self.alert_recipients = alert_recipients or []
        self.daily_summary_hour_utc = daily_summary_hour_utc
        self._clock = clock
        self._last_summary_date: date | None = None

    # ------------------------------------------------------------------
    # Scheduled ticks
    # ------------------------------------------------------------------

    async def analysis_tick(self) -> None:
        flags = self.flags.snapshot()
        if not flags.analysis_enabled:
            logger.debug("Analysis disabled by feature flag")
            return
        await self.analysis.run_cycle(self.symbols, flags)

    async def lifecycle_tick(self) -> None:
        await self.lifecycle.run_once()

    async def order_scan_tick(self) -> None:
        flags = self.flags.snapshot()
        if not flags.copy_trading_enabled:
            logger.debug("Copy trading disabled by feature flag")
            return
        await self.order_monitor.scan_all(flags)

    async def cache_cleanup_tick(self) -> None:
        self.market_data.cleanup()

    async def daily_summary_tick(self) -> None:
        await self.send_daily_summary_if_due()

    async def send_daily_summary_if_due(self, now: datetime | None = None) -> bool:
        """Mail the accumulated LEVEL_3 signals once per UTC day.

        Returns:
            True if a summary was queued.
        """
        now = now or self._clock()
        today = now.date()
        if now.hour < self.daily_summary_hour_utc or self._last_summary_date == today:
            return False
        self._last_summary_date = today

        backlog = self.signal_filter.drain_low_priority()
        if not backlog:
            return False

        flags = self.flags.snapshot()
        if not (flags.notifications_enabled and flags.daily_summary_enabled):
            logger.info(f"Daily summary disabled, discarding {len(backlog)} low-priority signal(s)")
            return False

        recipients = flags.signal_recipients(self.alert_recipients)
        if not recipients:
            return False
        return self.dispatcher.enqueue(render_daily_summary(backlog, today, recipients))

    # ------------------------------------------------------------------
    # Manual operations
    # ------------------------------------------------------------------

    async def trigger_analysis(self, symbol: str) -> dict:
        report = await self.analysis.run_cycle([symbol.upper()], self.flags.snapshot())
        return {
            **report.summary(),
            "signals": [s.model_dump(mode="json") for s in report.saved],
        }

    async def trigger_order_scan(self) -> dict[str, int]:
        return await self.order_monitor.scan_all(self.flags.snapshot())

    async def query_signals(self, query: SignalQuery, page: int = 1, page_size: int = 50) -> SignalPage:
        return await self.signal_repo.find(query, page, page_size)

    async def get_signal(self, signal_id: int) -> Signal | None:
        return await self.signal_repo.get(signal_id)

    async def close_signal(
        self,
        signal_id: int,
        final_price: Decimal | None = None,
        notes: str | None = None,
    ) -> Signal | None:
        """
        Raises:
            InvalidTransition: If the signal is already terminal.
            DataUnavailable: If no price was given and none can be fetched.
        """
        return await self.lifecycle.close_signal(signal_id, final_price, notes)

    async def cleanup_cache(self) -> int:
        return self.market_data.cleanup()

    async def reset_filter_state(self) -> dict:
        self.signal_filter.reset()
        await clear_filter_state()
        return self.signal_filter.stats()

    async def signal_stats(self, symbol: str | None = None) -> dict:
        return await self.signal_repo.stats(symbol)

    def filter_stats(self) -> dict:
        return self.signal_filter.stats()

    async def recent_orders(self, limit: int = 100, trader_id: int | None = None):
        return await self.order_repo.get_recent(limit, trader_id)

    async def traders(self):
        return await self.trader_repo.get_all()

    async def trader_performance(self, trader_id: int | None = None) -> list[TraderPerformance]:
        """Realized-PnL summaries, one trader or all of them."""
        return await self.order_repo.performance(trader_id)

    def feature_flags(self) -> FeatureFlags:
        return self.flags.snapshot()

    def diagnostics(self) -> dict:
        return {
            "symbols": self.analysis.diagnostics(),
            "market_data": self.market_data.stats,
            "filter": self.signal_filter.stats(),
            "lifecycle": dict(self.lifecycle.counts),
            "orders": dict(self.order_monitor.counts),
            "notifications": self.dispatcher.stats,
            "jobs": self.scheduler.status() if self.scheduler else {},
        }
