"""Copy-trading order monitor.

For every enabled trader watch the monitor pulls the recent order history,
stores orders it has not seen before and queues one alert per new order
for the trader's email subscribers. Traders are scanned concurrently; a
failure for one trader is logged and never affects the others.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from signal_engine.models import CopyOrder, TraderWatch, derive_action_type
from signal_engine.signal_filter import utc_now
from tradewise.clients import CopyTradingClient
from tradewise.errors import ParseError, PersistenceError
from tradewise.feature_flags import FeatureFlags
from tradewise.services.notifications import NotificationDispatcher, render_order_alert
from tradewise.storage import CopyOrderRepository, SubscriberDirectory, TraderWatchRepository

logger = logging.getLogger(__name__)

EXCHANGE = "BINANCE"


def _decimal(record: dict[str, Any], key: str, default: Decimal | None = None) -> Decimal | None:
    value = record.get(key)
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ParseError(f"Field '{key}' is not numeric: {value!r}") from e


def _timestamp(record: dict[str, Any], key: str) -> datetime | None:
    value = record.get(key)
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError) as e:
        raise ParseError(f"Field '{key}' is not an epoch-millis timestamp: {value!r}") from e


def order_identity(record: dict[str, Any], trader: TraderWatch) -> str:
    """Stable id for an upstream record.

    The upstream ``orderId`` when present; otherwise a composite of the
    portfolio and the fields that distinguish two fills.
    """
    upstream = record.get("orderId")
    if upstream not in (None, ""):
        return str(upstream)
    return ":".join(
        [
            trader.portfolio_id,
            str(record.get("symbol", "")),
            str(record.get("side", "")),
            str(record.get("positionSide", "")),
            str(record.get("orderTime", "")),
        ]
    )


def parse_order(record: dict[str, Any], trader: TraderWatch) -> CopyOrder:
    """Convert one upstream order record.

    Raises:
        ParseError: If a required field is missing or malformed.
    """
    if not isinstance(record, dict):
        raise ParseError(f"Order record is not an object: {type(record).__name__}")

    missing = [k for k in ("symbol", "side", "positionSide", "orderTime") if record.get(k) in (None, "")]
    if missing:
        raise ParseError(f"Order record missing {', '.join(missing)}")

    order_time = _timestamp(record, "orderTime")
    qty = _decimal(record, "executedQty", Decimal("0"))
    price = _decimal(record, "avgPrice", Decimal("0"))

    return CopyOrder(
        trader_id=trader.id,
        exchange=EXCHANGE,
        order_id=order_identity(record, trader),
        symbol=str(record["symbol"]),
        side=str(record["side"]).upper(),
        position_side=str(record["positionSide"]).upper(),
        executed_qty=qty,
        avg_price=price,
        total_value=qty * price,
        realized_pnl=_decimal(record, "totalPnl"),
        action_type=derive_action_type(record["side"], record["positionSide"]),
        order_time=order_time,
        update_time=_timestamp(record, "orderUpdateTime"),
    )


@dataclass
class TraderScanResult:
    trader_id: int
    fetched: int = 0
    new_orders: list[CopyOrder] = field(default_factory=list)
    duplicates: int = 0
    parse_errors: int = 0
    notified: int = 0


class OrderMonitor:
    """Polls followed traders and ingests their new orders."""

    def __init__(
        self,
        client: CopyTradingClient,
        order_repo: CopyOrderRepository,
        trader_repo: TraderWatchRepository,
        subscribers: SubscriberDirectory,
        dispatcher: NotificationDispatcher,
        concurrency: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.client = client
        self.order_repo = order_repo
        self.trader_repo = trader_repo
        self.subscribers = subscribers
        self.dispatcher = dispatcher
        self.concurrency = concurrency
        self._clock = clock
        self.counts: Counter[str] = Counter()

    async def scan_all(self, flags: FeatureFlags | None = None) -> dict[str, int]:
        """Scan every enabled trader once.

        Returns:
            Totals for this scan: traders, failed, fetched, new, duplicates, parse_errors, notified.
        """
        flags = flags or FeatureFlags()
        traders = await self.trader_repo.get_enabled()
        totals: Counter[str] = Counter(traders=len(traders))
        if not traders:
            return dict(totals)

        semaphore = asyncio.Semaphore(self.concurrency)

        async def guarded(trader: TraderWatch) -> TraderScanResult:
            async with semaphore:
                return await self.scan_trader(trader, flags)

        results = await asyncio.gather(*(guarded(t) for t in traders), return_exceptions=True)
        for trader, result in zip(traders, results):
            if isinstance(result, BaseException):
                totals["failed"] += 1
                logger.warning(f"Order scan failed for trader {trader.name} ({trader.portfolio_id}): {result}")
                continue
            totals["fetched"] += result.fetched
            totals["new"] += len(result.new_orders)
            totals["duplicates"] += result.duplicates
            totals["parse_errors"] += result.parse_errors
            totals["notified"] += result.notified

        self.counts.update(totals)
        if totals["new"] or totals["failed"]:
            logger.info(f"Order scan: {dict(totals)}")
        return dict(totals)

    async def scan_trader(self, trader: TraderWatch, flags: FeatureFlags | None = None) -> TraderScanResult:
        """Fetch, store and announce one trader's new orders.

        Raises:
            DataUnavailable: If the order history could not be fetched.
        """
        flags = flags or FeatureFlags()
        result = TraderScanResult(trader_id=trader.id)
        now = self._clock()

        try:
            start, end = self.client.time_window(now)
            records = await self.client.get_trader_orders(trader.portfolio_id, start, end)
            result.fetched = len(records)

            for record in records:
                try:
                    order = parse_order(record, trader)
                except ParseError as e:
                    result.parse_errors += 1
                    logger.warning(f"Skipping malformed order for {trader.name}: {e}")
                    continue

                try:
                    inserted = await self.order_repo.insert_if_absent(order)
                except PersistenceError as e:
                    logger.warning(f"{trader.name}: {e}")
                    continue
                if inserted:
                    result.new_orders.append(order)
                else:
                    result.duplicates += 1

            if result.new_orders:
                logger.info(f"{trader.name}: {len(result.new_orders)} new order(s)")
                result.notified = await self._announce(trader, result.new_orders, flags)
                latest = max(o.order_time for o in result.new_orders)
                try:
                    await self.trader_repo.record_new_orders(trader.id, len(result.new_orders), latest, now)
                except PersistenceError as e:
                    logger.warning(f"{trader.name}: {e}")
        finally:
            await self.trader_repo.update_last_check(trader.id, now)

        return result

    async def _announce(self, trader: TraderWatch, orders: list[CopyOrder], flags: FeatureFlags) -> int:
        if not (flags.notifications_enabled and flags.copy_trading_enabled):
            return 0

        try:
            emails = await self.subscribers.recipients_for(trader.id)
        except PersistenceError as e:
            logger.warning(f"{trader.name}: {e}")
            return 0
        recipients = flags.copy_trading_recipients(emails)
        if not recipients:
            return 0

        queued = 0
        for order in sorted(orders, key=lambda o: o.order_time):
            if self.dispatcher.enqueue(render_order_alert(order, trader.name, recipients)):
                queued += 1
        return queued
