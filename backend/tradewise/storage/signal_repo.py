"""Signal data repository."""

import logging
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError

from tradewise.errors import PersistenceError
from tradewise.models import (
    Direction,
    Signal,
    SignalPage,
    SignalQuery,
    SignalStatus,
    SignalTier,
)
from tradewise.storage.database import SignalTable, get_database
from signal_engine.models import CREATABLE_STATUSES

logger = logging.getLogger(__name__)


class SignalRepository:
    """Repository for signal data operations.

    ``save`` appends and ``update_outcome`` is the only way a status moves
    afterwards; nothing else writes to the table.
    """

    async def save(self, signal: Signal) -> Signal:
        """Insert a new signal and return it with its assigned id.

        Raises:
            PersistenceError: If the status is not creatable or the insert fails.
        """
        if signal.status not in CREATABLE_STATUSES:
            raise PersistenceError(f"Cannot create a signal in status {signal.status.value}")

        try:
            async with get_database().session() as session:
                stmt = (
                    insert(SignalTable)
                    .values(
                        symbol=signal.symbol,
                        direction=signal.direction.value,
                        origin=signal.origin,
                        entry_price=signal.entry_price,
                        stop_loss=signal.stop_loss,
                        take_profit=signal.take_profit,
                        score=signal.score,
                        tier=signal.tier.value,
                        status=signal.status.value,
                        confidence=signal.confidence,
                        risk_reward=signal.risk_reward,
                        regime=signal.regime,
                        reason=signal.reason,
                        created_at=signal.created_at,
                    )
                    .returning(SignalTable.id)
                )
                result = await session.execute(stmt)
                signal_id = result.scalar_one()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save signal for {signal.symbol}: {e}") from e

        return signal.model_copy(update={"id": signal_id})

    async def update_outcome(self, signal: Signal) -> bool:
        """Persist a status change and its outcome fields.

        The UPDATE only matches rows whose stored status may legally move to
        ``signal.status``, so a terminal row is never overwritten even when
        two writers race.

        Returns:
            True if the row changed, False if it was missing or already terminal.

        Raises:
            PersistenceError: If the update fails.
        """
        if signal.id is None:
            raise PersistenceError("Cannot update a signal without id")

        sources = [s.value for s in SignalStatus if s.can_transition_to(signal.status)]
        if not sources:
            return False

        try:
            async with get_database().session() as session:
                stmt = (
                    update(SignalTable)
                    .where(SignalTable.id == signal.id, SignalTable.status.in_(sources))
                    .values(
                        status=signal.status.value,
                        outcome_at=signal.outcome_at,
                        final_price=signal.final_price,
                        pnl_percent=signal.pnl_percent,
                        notes=signal.notes,
                    )
                )
                result = await session.execute(stmt)
                return result.rowcount == 1
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update signal {signal.id}: {e}") from e

    async def get(self, signal_id: int) -> Signal | None:
        """Get a signal by ID."""
        async with get_database().session() as session:
            stmt = select(SignalTable).where(SignalTable.id == signal_id)
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()

            if row is None:
                return None
            return self._row_to_signal(row)

    async def find(self, query: SignalQuery, page: int = 1, page_size: int = 50) -> SignalPage:
        """Filtered, paginated lookup, newest first."""
        conditions = []
        if query.symbol:
            conditions.append(SignalTable.symbol == query.symbol)
        if query.tier:
            conditions.append(SignalTable.tier == query.tier.value)
        if query.status:
            conditions.append(SignalTable.status == query.status.value)
        if query.start:
            conditions.append(SignalTable.created_at >= query.start)
        if query.end:
            conditions.append(SignalTable.created_at <= query.end)

        page = max(page, 1)
        async with get_database().session() as session:
            count_stmt = select(func.count()).select_from(SignalTable).where(*conditions)
            total = (await session.execute(count_stmt)).scalar_one()

            stmt = (
                select(SignalTable)
                .where(*conditions)
                .order_by(SignalTable.created_at.desc(), SignalTable.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            rows = (await session.execute(stmt)).scalars().all()

        return SignalPage(
            items=[self._row_to_signal(row) for row in rows],
            total=total,
            page=page,
            page_size=page_size,
        )

    async def get_by_status(self, status: SignalStatus) -> list[Signal]:
        """All signals in one status, oldest first."""
        async with get_database().session() as session:
            stmt = (
                select(SignalTable)
                .where(SignalTable.status == status.value)
                .order_by(SignalTable.created_at.asc())
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [self._row_to_signal(row) for row in rows]

    async def get_active(self) -> list[Signal]:
        return await self.get_by_status(SignalStatus.ACTIVE)

    async def stats(self, symbol: str | None = None) -> dict:
        """Counts by status and tier plus the average pnl of closed signals."""
        async with get_database().session() as session:
            by_status = select(SignalTable.status, func.count().label("count")).group_by(SignalTable.status)
            by_tier = select(SignalTable.tier, func.count().label("count")).group_by(SignalTable.tier)
            pnl = select(
                func.avg(SignalTable.pnl_percent).label("avg_pnl"),
                func.count().filter(SignalTable.pnl_percent > 0).label("wins"),
                func.count().filter(SignalTable.pnl_percent <= 0).label("losses"),
            ).where(SignalTable.status == SignalStatus.CLOSED.value)
            if symbol:
                by_status = by_status.where(SignalTable.symbol == symbol)
                by_tier = by_tier.where(SignalTable.symbol == symbol)
                pnl = pnl.where(SignalTable.symbol == symbol)

            status_rows = (await session.execute(by_status)).all()
            tier_rows = (await session.execute(by_tier)).all()
            pnl_row = (await session.execute(pnl)).one()

        status_counts = {s.value: 0 for s in SignalStatus}
        status_counts.update({row.status: row.count for row in status_rows})
        tier_counts = {t.value: 0 for t in SignalTier}
        tier_counts.update({row.tier: row.count for row in tier_rows})
        decided = (pnl_row.wins or 0) + (pnl_row.losses or 0)

        return {
            "by_status": status_counts,
            "by_tier": tier_counts,
            "total": sum(status_counts.values()),
            "avg_pnl_percent": float(pnl_row.avg_pnl) if pnl_row.avg_pnl is not None else None,
            "win_rate": (pnl_row.wins or 0) / decided if decided else 0.0,
        }

    def _row_to_signal(self, row: SignalTable) -> Signal:
        """Convert database row to Signal model."""
        return Signal(
            id=row.id,
            symbol=row.symbol,
            direction=Direction(row.direction),
            origin=row.origin,
            entry_price=Decimal(str(row.entry_price)),
            stop_loss=Decimal(str(row.stop_loss)),
            take_profit=Decimal(str(row.take_profit)),
            score=row.score,
            tier=SignalTier(row.tier),
            status=SignalStatus(row.status),
            confidence=row.confidence or 0.0,
            risk_reward=row.risk_reward or 0.0,
            regime=row.regime or "",
            reason=row.reason or "",
            created_at=row.created_at,
            outcome_at=row.outcome_at,
            final_price=Decimal(str(row.final_price)) if row.final_price is not None else None,
            pnl_percent=Decimal(str(row.pnl_percent)) if row.pnl_percent is not None else None,
            notes=row.notes,
        )
