"""Lifecycle tracker: moves persisted signals through PENDING -> ACTIVE -> CLOSED/EXPIRED.

Each run loads the open signals, fetches one price per symbol and applies
``signal_engine.lifecycle.evaluate``. Writes go through
``SignalRepository.update_outcome``, which refuses rows that are already
terminal, so overlapping runs or a concurrent manual close cannot
overwrite an outcome.
"""

import asyncio
import logging
from collections import Counter
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Awaitable, Callable

from signal_engine.lifecycle import DEFAULT_HORIZON, NOTE_MANUAL, evaluate
from signal_engine.models import Signal, SignalStatus
from signal_engine.signal_filter import utc_now
from tradewise.errors import DataUnavailable, InvalidTransition, PersistenceError
from tradewise.services.market_data import MarketDataCache
from tradewise.storage import SignalRepository

logger = logging.getLogger(__name__)

# Receives the signal after its status change has been stored
TransitionCallback = Callable[[Signal], Awaitable[None]]


class SignalLifecycleTracker:
    """Checks open signals against current prices and the expiry horizon."""

    def __init__(
        self,
        signal_repo: SignalRepository,
        market_data: MarketDataCache,
        horizon: timedelta = DEFAULT_HORIZON,
        concurrency: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.signal_repo = signal_repo
        self.market_data = market_data
        self.horizon = horizon
        self.concurrency = concurrency
        self._clock = clock

        self._callbacks: list[TransitionCallback] = []
        self.counts: Counter[str] = Counter()

    def on_transition(self, callback: TransitionCallback) -> None:
        """Register callback for stored status changes. Duplicates are ignored."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    async def _notify(self, signal: Signal) -> None:
        for callback in self._callbacks:
            try:
                await callback(signal)
            except Exception as e:
                logger.error(f"Transition callback failed for signal {signal.id}: {e}")

    async def _prices(self, symbols: set[str]) -> dict[str, Decimal | None]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def fetch(symbol: str) -> Decimal | None:
            async with semaphore:
                return await self.market_data.get_price(symbol)

        ordered = sorted(symbols)
        results = await asyncio.gather(*(fetch(s) for s in ordered), return_exceptions=True)
        prices: dict[str, Decimal | None] = {}
        for symbol, result in zip(ordered, results):
            if isinstance(result, BaseException):
                logger.warning(f"Price lookup failed for {symbol}: {result}")
                prices[symbol] = None
            else:
                prices[symbol] = result
        return prices

    async def run_once(self) -> dict[str, int]:
        """One pass over PENDING and ACTIVE signals.

        Returns:
            Counts for this run: checked, activated, closed, expired, deferred, conflicts, errors.
        """
        pending = await self.signal_repo.get_by_status(SignalStatus.PENDING)
        active = await self.signal_repo.get_active()
        run: Counter[str] = Counter()
        if not pending and not active:
            return dict(run)

        prices = await self._prices({s.symbol for s in pending} | {s.symbol for s in active})
        now = self._clock()

        for signal in pending:
            if prices.get(signal.symbol) is None:
                run["deferred"] += 1
                continue
            promoted = signal.with_outcome(SignalStatus.ACTIVE, None, now, None)
            if await self._store(promoted, run):
                run["activated"] += 1
                active.append(promoted)

        for signal in active:
            run["checked"] += 1
            price = prices.get(signal.symbol)
            if price is None:
                run["deferred"] += 1
                continue

            transition = evaluate(signal, price, now, self.horizon)
            if transition is None:
                continue

            updated = signal.with_outcome(transition.status, transition.final_price, now, transition.notes)
            if await self._store(updated, run):
                run["closed" if transition.status is SignalStatus.CLOSED else "expired"] += 1
                logger.info(
                    f"Signal {signal.id} {signal.symbol} {signal.direction.value} -> "
                    f"{transition.status.value} at {transition.final_price} "
                    f"({updated.pnl_percent}%): {transition.notes}"
                )

        self.counts.update(run)
        if run["closed"] or run["expired"] or run["activated"]:
            logger.info(f"Lifecycle run: {dict(run)}")
        return dict(run)

    async def _store(self, signal: Signal, run: Counter) -> bool:
        try:
            changed = await self.signal_repo.update_outcome(signal)
        except PersistenceError as e:
            run["errors"] += 1
            logger.warning(f"Could not store status of signal {signal.id}: {e}")
            return False
        if not changed:
            run["conflicts"] += 1
            logger.info(f"Signal {signal.id} changed concurrently, skipping")
            return False
        await self._notify(signal)
        return True

    async def close_signal(
        self,
        signal_id: int,
        final_price: Decimal | None = None,
        notes: str | None = None,
    ) -> Signal | None:
        """Manually close a signal.

        Uses the current price when ``final_price`` is not given.

        Returns:
            The closed signal, or None if no such signal exists.

        Raises:
            InvalidTransition: If the signal is already CLOSED or EXPIRED.
            DataUnavailable: If no price was given and none can be fetched.
        """
        signal = await self.signal_repo.get(signal_id)
        if signal is None:
            return None
        if signal.status.is_terminal:
            raise InvalidTransition(f"Signal {signal_id} is already {signal.status.value}")

        if final_price is None:
            final_price = await self.market_data.get_price(signal.symbol)
            if final_price is None:
                raise DataUnavailable(f"No price for {signal.symbol}; signal {signal_id} not closed")

        closed = signal.with_outcome(SignalStatus.CLOSED, final_price, self._clock(), notes or NOTE_MANUAL)
        if not await self.signal_repo.update_outcome(closed):
            raise InvalidTransition(f"Signal {signal_id} reached a terminal state concurrently")

        self.counts["manual_closed"] += 1
        logger.info(f"Signal {signal_id} manually closed at {final_price}")
        await self._notify(closed)
        return closed
