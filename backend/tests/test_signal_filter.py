"""Tests for the signal filter: dedup, cooldown and per-tier daily quota."""

import asyncio
from datetime import timedelta

import pytest

from signal_engine.models import Direction, FilterConfig, SignalTier
from signal_engine.signal_filter import SignalFilter, collapse_duplicates


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock(t0):
    return FakeClock(t0)


@pytest.fixture
def signal_filter(clock):
    return SignalFilter(FilterConfig(), clock=clock)


class TestCollapse:
    def test_keeps_best_per_symbol_direction(self, make_scored):
        weak = make_scored(score=5, tier=SignalTier.LEVEL_3)
        strong = make_scored(score=9)
        other_side = make_scored(direction=Direction.SELL, score=6, tier=SignalTier.LEVEL_2)

        survivors, collapsed = collapse_duplicates([weak, strong, other_side])

        assert collapsed == 1
        assert strong in survivors
        assert other_side in survivors

    def test_confidence_breaks_score_tie(self, make_scored):
        a = make_scored(score=8, confidence=0.5)
        b = make_scored(score=8, confidence=0.9)
        survivors, _ = collapse_duplicates([a, b])
        assert survivors == [b]


class TestCooldown:
    @pytest.mark.asyncio
    async def test_second_signal_within_window_rejected(self, signal_filter, clock, make_scored):
        assert await signal_filter.filter_for_dispatch([make_scored()]) != []

        clock.advance(minutes=30)
        assert await signal_filter.filter_for_dispatch([make_scored()]) == []
        assert signal_filter.stats()["rejections"]["cooldown"] == 1

    @pytest.mark.asyncio
    async def test_signal_after_window_accepted(self, signal_filter, clock, make_scored):
        await signal_filter.filter_for_dispatch([make_scored()])

        clock.advance(minutes=61)
        assert len(await signal_filter.filter_for_dispatch([make_scored()])) == 1

    @pytest.mark.asyncio
    async def test_cooldown_is_per_symbol(self, signal_filter, make_scored):
        await signal_filter.filter_for_dispatch([make_scored(symbol="BTCUSDT")])
        accepted = await signal_filter.filter_for_dispatch([make_scored(symbol="ETHUSDT")])
        assert [s.symbol for s in accepted] == ["ETHUSDT"]

    @pytest.mark.asyncio
    async def test_higher_tier_claims_symbol_first(self, signal_filter, make_scored):
        low = make_scored(direction=Direction.SELL, score=5, tier=SignalTier.LEVEL_3)
        high = make_scored(direction=Direction.BUY, score=9, tier=SignalTier.LEVEL_1)

        accepted = await signal_filter.filter_for_dispatch([low, high])

        assert accepted == [high]

    @pytest.mark.asyncio
    async def test_zero_cooldown_disables(self, clock, make_scored):
        f = SignalFilter(FilterConfig(cooldown_hours=0), clock=clock)
        await f.filter_for_dispatch([make_scored()])
        assert len(await f.filter_for_dispatch([make_scored()])) == 1


class TestQuota:
    @pytest.mark.asyncio
    async def test_tier_quota_enforced(self, signal_filter, make_scored):
        level_1 = [make_scored(symbol=f"S{i}USDT", tier=SignalTier.LEVEL_1) for i in range(10)]
        level_2 = [make_scored(symbol=f"T{i}USDT", score=7, tier=SignalTier.LEVEL_2) for i in range(10)]

        accepted = await signal_filter.filter_for_dispatch(level_1 + level_2)

        by_tier = {tier: sum(1 for s in accepted if s.tier is tier) for tier in SignalTier}
        assert by_tier[SignalTier.LEVEL_1] == 5
        assert by_tier[SignalTier.LEVEL_2] == 8
        assert signal_filter.remaining_quota(SignalTier.LEVEL_1) == 0
        assert signal_filter.remaining_quota(SignalTier.LEVEL_2) == 0
        assert signal_filter.stats()["rejections"]["quota"] == 7

    @pytest.mark.asyncio
    async def test_level_1_fills_before_level_2(self, clock, make_scored):
        config = FilterConfig(
            daily_quota={SignalTier.LEVEL_1: 5, SignalTier.LEVEL_2: 3, SignalTier.LEVEL_3: 7}
        )
        f = SignalFilter(config, clock=clock)
        level_2 = [make_scored(symbol=f"T{i}USDT", score=7, tier=SignalTier.LEVEL_2) for i in range(10)]
        level_1 = [make_scored(symbol=f"S{i}USDT", tier=SignalTier.LEVEL_1) for i in range(10)]

        accepted = await f.filter_for_dispatch(level_2 + level_1)

        assert [s.tier for s in accepted] == [SignalTier.LEVEL_1] * 5 + [SignalTier.LEVEL_2] * 3
        assert f.remaining_quota(SignalTier.LEVEL_2) == 0
        assert f.stats()["rejections"]["quota"] == 12

    @pytest.mark.asyncio
    async def test_quota_across_cycles_same_symbol(self, clock, make_scored):
        f = SignalFilter(FilterConfig(cooldown_hours=0), clock=clock)
        accepted = 0
        for _ in range(7):
            accepted += len(await f.filter_for_dispatch([make_scored()]))
            clock.advance(minutes=5)
        assert accepted == 5

    @pytest.mark.asyncio
    async def test_quota_resets_on_new_utc_day(self, clock, make_scored):
        f = SignalFilter(FilterConfig(cooldown_hours=0), clock=clock)
        for _ in range(5):
            await f.filter_for_dispatch([make_scored()])
        assert f.remaining_quota(SignalTier.LEVEL_1) == 0

        clock.advance(days=1)
        assert f.remaining_quota(SignalTier.LEVEL_1) == 5
        assert len(await f.filter_for_dispatch([make_scored()])) == 1

    @pytest.mark.asyncio
    async def test_concurrent_batches_never_exceed_quota(self, clock, make_scored):
        f = SignalFilter(FilterConfig(cooldown_hours=0), clock=clock)
        batches = [[make_scored(symbol=f"S{i}USDT")] for i in range(20)]

        results = await asyncio.gather(*(f.filter_for_dispatch(b) for b in batches))

        assert sum(len(r) for r in results) == 5


class TestStateManagement:
    @pytest.mark.asyncio
    async def test_low_priority_backlog(self, signal_filter, make_scored):
        low = make_scored(score=4, tier=SignalTier.LEVEL_3)
        await signal_filter.filter_for_dispatch([low])

        assert signal_filter.drain_low_priority() == [low]
        assert signal_filter.drain_low_priority() == []

    @pytest.mark.asyncio
    async def test_reset(self, signal_filter, make_scored):
        await signal_filter.filter_for_dispatch([make_scored()])
        signal_filter.reset()

        stats = signal_filter.stats()
        assert stats["today_count"] == 0
        assert stats["symbols_in_cooldown"] == []
        assert len(await signal_filter.filter_for_dispatch([make_scored()])) == 1

    @pytest.mark.asyncio
    async def test_stats(self, signal_filter, make_scored):
        await signal_filter.filter_for_dispatch([make_scored()])
        stats = signal_filter.stats()

        assert stats["today_count"] == 1
        assert stats["max_daily"] == 20
        assert stats["remaining"] == 19
        assert stats["by_tier"]["LEVEL_1"]["remaining"] == 4
        assert stats["symbols_in_cooldown"] == ["BTCUSDT"]

    @pytest.mark.asyncio
    async def test_export_restore(self, signal_filter, clock, make_scored):
        await signal_filter.filter_for_dispatch([make_scored()])
        state = signal_filter.export_state()

        restored = SignalFilter(FilterConfig(), clock=clock)
        restored.restore_state(state)

        assert restored.in_cooldown("BTCUSDT")
        assert restored.remaining_quota(SignalTier.LEVEL_1) == 4

    @pytest.mark.asyncio
    async def test_restore_drops_stale_day_counts(self, signal_filter, clock, make_scored):
        await signal_filter.filter_for_dispatch([make_scored()])
        state = signal_filter.export_state()

        clock.advance(days=1)
        restored = SignalFilter(FilterConfig(), clock=clock)
        restored.restore_state(state)

        assert restored.remaining_quota(SignalTier.LEVEL_1) == 5
        assert not restored.in_cooldown("BTCUSDT")
