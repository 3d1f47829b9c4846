"""Signal filter: intra-cycle dedup, per-symbol cooldown and per-tier daily quota.

State is process-wide and mutated only when a signal is accepted. Access is
serialized per symbol (cooldown) and per tier (quota) rather than through
one global lock, so unrelated symbols never wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Iterable

from signal_engine.models import FilterConfig, ScoredSignal, SignalTier

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

REJECT_COOLDOWN = "cooldown"
REJECT_QUOTA = "quota"
REJECT_DUPLICATE = "duplicate"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def collapse_duplicates(signals: Iterable[ScoredSignal]) -> tuple[list[ScoredSignal], int]:
    """Keep the best-scored candidate per (symbol, direction).

    Returns:
        (survivors, number collapsed)
    """
    best: dict[tuple, ScoredSignal] = {}
    total = 0
    for signal in signals:
        total += 1
        current = best.get(signal.dedup_key)
        if current is None or (signal.score, signal.confidence) > (current.score, current.confidence):
            best[signal.dedup_key] = signal
    return list(best.values()), total - len(best)


def dispatch_order(signal: ScoredSignal) -> tuple:
    return (signal.tier.rank, -signal.score, -signal.confidence, signal.symbol, signal.direction.value)


class SignalFilter:
    """Decides which scored signals get persisted and dispatched."""

    def __init__(self, config: FilterConfig | None = None, clock: Clock | None = None):
        self.config = config or FilterConfig()
        self._clock = clock or utc_now

        self._last_accepted: dict[str, datetime] = {}
        self._daily_counts: dict[SignalTier, int] = {tier: 0 for tier in SignalTier}
        self._day: date = self._clock().date()
        self._last_reset: datetime = self._clock()
        self._low_priority: list[ScoredSignal] = []
        self._rejections: Counter[str] = Counter()

        self._symbol_locks: dict[str, asyncio.Lock] = {}
        self._tier_locks: dict[SignalTier, asyncio.Lock] = {tier: asyncio.Lock() for tier in SignalTier}

    @property
    def cooldown(self) -> timedelta:
        return timedelta(hours=self.config.cooldown_hours)

    def _symbol_lock(self, symbol: str) -> asyncio.Lock:
        lock = self._symbol_locks.get(symbol)
        if lock is None:
            lock = self._symbol_locks[symbol] = asyncio.Lock()
        return lock

    def _roll_day(self, now: datetime) -> None:
        today = now.date()
        if today != self._day:
            logger.info(
                "Daily quota reset (%s -> %s), previous counts: %s",
                self._day,
                today,
                {t.value: n for t, n in self._daily_counts.items()},
            )
            self._day = today
            self._daily_counts = {tier: 0 for tier in SignalTier}
            self._last_reset = now

    def in_cooldown(self, symbol: str, now: datetime | None = None) -> bool:
        if self.config.cooldown_hours <= 0:
            return False
        last = self._last_accepted.get(symbol)
        if last is None:
            return False
        return (now or self._clock()) - last < self.cooldown

    def remaining_quota(self, tier: SignalTier) -> int:
        self._roll_day(self._clock())
        return max(0, self.config.quota_for(tier) - self._daily_counts[tier])

    async def filter_for_dispatch(self, signals: Iterable[ScoredSignal]) -> list[ScoredSignal]:
        """Return the accepted subset, LEVEL_1 first.

        Candidates are collapsed per symbol+direction, then considered in
        tier order so higher tiers claim cooldown slots before lower ones.
        """
        survivors, collapsed = collapse_duplicates(signals)
        if collapsed:
            self._rejections[REJECT_DUPLICATE] += collapsed

        accepted: list[ScoredSignal] = []
        for signal in sorted(survivors, key=dispatch_order):
            if await self._consider(signal):
                accepted.append(signal)
        return accepted

    async def _consider(self, signal: ScoredSignal) -> bool:
        async with self._symbol_lock(signal.symbol):
            async with self._tier_locks[signal.tier]:
                now = self._clock()
                self._roll_day(now)

                if self.in_cooldown(signal.symbol, now):
                    self._rejections[REJECT_COOLDOWN] += 1
                    logger.debug(f"{signal.symbol} {signal.tier.value}: rejected, in cooldown")
                    return False

                if self._daily_counts[signal.tier] >= self.config.quota_for(signal.tier):
                    self._rejections[REJECT_QUOTA] += 1
                    logger.debug(f"{signal.symbol} {signal.tier.value}: rejected, daily quota reached")
                    return False

                self._daily_counts[signal.tier] += 1
                self._last_accepted[signal.symbol] = now
                if signal.tier is SignalTier.LEVEL_3:
                    self._low_priority.append(signal)

        logger.info(
            f"Accepted {signal.tier.value} {signal.direction.value} {signal.symbol} "
            f"score={signal.score} rr={signal.risk_reward:.2f}"
        )
        return True

    def drain_low_priority(self) -> list[ScoredSignal]:
        """Hand over LEVEL_3 signals collected for the daily summary."""
        pending, self._low_priority = self._low_priority, []
        return pending

    def reset(self) -> None:
        """Forget cooldowns, quotas and the low-priority backlog."""
        now = self._clock()
        self._last_accepted.clear()
        self._daily_counts = {tier: 0 for tier in SignalTier}
        self._day = now.date()
        self._last_reset = now
        self._low_priority.clear()
        self._rejections.clear()
        logger.info("Signal filter state reset")

    def stats(self) -> dict[str, Any]:
        self._roll_day(self._clock())
        total_max = sum(self.config.quota_for(t) for t in SignalTier)
        total_today = sum(self._daily_counts.values())
        return {
            "today_count": total_today,
            "max_daily": total_max,
            "remaining": max(0, total_max - total_today),
            "by_tier": {
                tier.value: {
                    "accepted": self._daily_counts[tier],
                    "quota": self.config.quota_for(tier),
                    "remaining": max(0, self.config.quota_for(tier) - self._daily_counts[tier]),
                }
                for tier in SignalTier
            },
            "low_priority_count": len(self._low_priority),
            "symbols_in_cooldown": sorted(s for s in self._last_accepted if self.in_cooldown(s)),
            "rejections": dict(self._rejections),
            "last_reset": self._last_reset.isoformat(),
        }

    def export_state(self) -> dict[str, Any]:
        """Serializable snapshot of cooldowns and quota counters."""
        return {
            "day": self._day.isoformat(),
            "counts": {tier.value: n for tier, n in self._daily_counts.items()},
            "last_accepted": {s: t.isoformat() for s, t in self._last_accepted.items()},
        }

    def restore_state(self, state: dict[str, Any]) -> None:
        """Load a snapshot produced by export_state. Counts from a past day are dropped."""
        self._last_accepted = {
            symbol: datetime.fromisoformat(ts) for symbol, ts in state.get("last_accepted", {}).items()
        }
        day = state.get("day")
        if day and date.fromisoformat(day) == self._clock().date():
            self._day = date.fromisoformat(day)
            counts = state.get("counts", {})
            self._daily_counts = {tier: int(counts.get(tier.value, 0)) for tier in SignalTier}
