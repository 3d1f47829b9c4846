"""Copy-order and trader-watch repositories."""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError

from tradewise.errors import PersistenceError
from tradewise.models import ActionType, CopyOrder, TraderPerformance, TraderWatch
from tradewise.storage.database import CopyOrderTable, TraderWatchTable, get_database

logger = logging.getLogger(__name__)


def _decimal_or_none(value) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


class CopyOrderRepository:
    """Repository for ingested copy orders."""

    async def insert_if_absent(self, order: CopyOrder) -> bool:
        """Insert unless (exchange, order_id) already exists.

        The unique index makes this atomic, so overlapping scans can never
        store the same order twice.

        Returns:
            True if a new row was written, False for a duplicate.

        Raises:
            PersistenceError: If the insert fails.
        """
        try:
            async with get_database().session() as session:
                stmt = (
                    insert(CopyOrderTable)
                    .values(
                        trader_id=order.trader_id,
                        exchange=order.exchange,
                        order_id=order.order_id,
                        symbol=order.symbol,
                        side=order.side,
                        position_side=order.position_side,
                        executed_qty=order.executed_qty,
                        avg_price=order.avg_price,
                        total_value=order.total_value,
                        realized_pnl=order.realized_pnl,
                        action_type=order.action_type.value,
                        order_time=order.order_time,
                        update_time=order.update_time,
                    )
                    .on_conflict_do_nothing(index_elements=["exchange", "order_id"])
                    .returning(CopyOrderTable.id)
                )
                result = await session.execute(stmt)
                return result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save order {order.exchange}/{order.order_id}: {e}") from e

    async def get_recent(self, limit: int = 100, trader_id: int | None = None) -> list[CopyOrder]:
        async with get_database().session() as session:
            stmt = select(CopyOrderTable)
            if trader_id is not None:
                stmt = stmt.where(CopyOrderTable.trader_id == trader_id)
            stmt = stmt.order_by(CopyOrderTable.order_time.desc()).limit(limit)
            rows = (await session.execute(stmt)).scalars().all()
            return [self._row_to_order(row) for row in rows]

    async def performance(self, trader_id: int | None = None) -> list[TraderPerformance]:
        """Realized-PnL summary per trader, best net profit first.

        Traders without orders are included with zero totals.
        """
        pnl = CopyOrderTable.realized_pnl
        stmt = (
            select(
                TraderWatchTable.id.label("trader_id"),
                TraderWatchTable.name.label("trader_name"),
                func.count(CopyOrderTable.id).label("total_orders"),
                func.count(CopyOrderTable.id).filter(pnl > 0).label("profitable_orders"),
                func.count(CopyOrderTable.id).filter(pnl < 0).label("unprofitable_orders"),
                func.sum(pnl).filter(pnl > 0).label("total_profit"),
                func.sum(pnl).filter(pnl < 0).label("total_loss"),
                func.min(pnl).label("largest_loss"),
                func.min(CopyOrderTable.order_time).label("first_order_time"),
                func.max(CopyOrderTable.order_time).label("last_order_time"),
            )
            .select_from(TraderWatchTable)
            .outerjoin(CopyOrderTable, CopyOrderTable.trader_id == TraderWatchTable.id)
            .group_by(TraderWatchTable.id, TraderWatchTable.name)
        )
        if trader_id is not None:
            stmt = stmt.where(TraderWatchTable.id == trader_id)

        async with get_database().session() as session:
            rows = (await session.execute(stmt)).all()

        stats = [
            TraderPerformance.from_totals(
                row.trader_id,
                row.trader_name,
                total_orders=row.total_orders,
                profitable_orders=row.profitable_orders,
                unprofitable_orders=row.unprofitable_orders,
                total_profit=_decimal_or_none(row.total_profit),
                total_loss=_decimal_or_none(row.total_loss),
                largest_loss=_decimal_or_none(row.largest_loss),
                first_order_time=row.first_order_time,
                last_order_time=row.last_order_time,
            )
            for row in rows
        ]
        return sorted(stats, key=lambda s: (-s.net_profit, s.trader_id))

    def _row_to_order(self, row: CopyOrderTable) -> CopyOrder:
        return CopyOrder(
            id=row.id,
            trader_id=row.trader_id,
            exchange=row.exchange,
            order_id=row.order_id,
            symbol=row.symbol,
            side=row.side,
            position_side=row.position_side,
            executed_qty=Decimal(str(row.executed_qty)),
            avg_price=Decimal(str(row.avg_price)),
            total_value=Decimal(str(row.total_value)),
            realized_pnl=_decimal_or_none(row.realized_pnl),
            action_type=ActionType(row.action_type),
            order_time=row.order_time,
            update_time=row.update_time,
        )


class TraderWatchRepository:
    """Repository for followed traders and their counters."""

    async def get_enabled(self) -> list[TraderWatch]:
        async with get_database().session() as session:
            stmt = (
                select(TraderWatchTable)
                .where(TraderWatchTable.enabled.is_(True))
                .order_by(TraderWatchTable.id)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [self._row_to_watch(row) for row in rows]

    async def get_all(self) -> list[TraderWatch]:
        async with get_database().session() as session:
            stmt = select(TraderWatchTable).order_by(TraderWatchTable.id)
            rows = (await session.execute(stmt)).scalars().all()
            return [self._row_to_watch(row) for row in rows]

    async def record_new_orders(
        self,
        trader_id: int,
        new_orders: int,
        latest_order_time: datetime,
        now: datetime,
    ) -> None:
        """Bump today/total counters in one statement; today's count restarts on a new day.

        Raises:
            PersistenceError: If the update fails.
        """
        today = now.date()
        stmt = (
            update(TraderWatchTable)
            .where(TraderWatchTable.id == trader_id)
            .values(
                today_order_count=case(
                    (
                        TraderWatchTable.last_order_date == today,
                        TraderWatchTable.today_order_count + new_orders,
                    ),
                    else_=new_orders,
                ),
                total_order_count=TraderWatchTable.total_order_count + new_orders,
                last_order_date=today,
                last_order_time=func.greatest(
                    func.coalesce(TraderWatchTable.last_order_time, latest_order_time),
                    latest_order_time,
                ),
            )
        )
        try:
            async with get_database().session() as session:
                await session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update order counters for trader {trader_id}: {e}") from e

    async def update_last_check(self, trader_id: int, now: datetime) -> None:
        async with get_database().session() as session:
            stmt = (
                update(TraderWatchTable)
                .where(TraderWatchTable.id == trader_id)
                .values(last_check_time=now)
            )
            await session.execute(stmt)

    def _row_to_watch(self, row: TraderWatchTable) -> TraderWatch:
        return TraderWatch(
            id=row.id,
            name=row.name,
            portfolio_id=row.portfolio_id,
            enabled=row.enabled,
            monitor_interval_seconds=row.monitor_interval_seconds,
            today_order_count=row.today_order_count,
            total_order_count=row.total_order_count,
            last_order_date=row.last_order_date,
            last_order_time=row.last_order_time,
            last_check_time=row.last_check_time,
        )
