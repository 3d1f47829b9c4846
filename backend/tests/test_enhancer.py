"""Tests for signal scoring, tiering and stop/target placement."""

import math
from decimal import Decimal

import pytest

from signal_engine.detectors.features import last_atr
from signal_engine.enhancer import SignalEnhancer, stops_and_targets
from signal_engine.models import (
    Decision,
    Direction,
    FusionResult,
    MultiTimeframeCandles,
    ScoringConfig,
    SignalTier,
)


def fused(decision: Decision, price, atr: float, confidence: float = 0.75) -> FusionResult:
    return FusionResult(
        symbol="BTCUSDT",
        decision=decision,
        aggregated_strength=0.8,
        confidence=confidence,
        reasoning="test",
        regime="TRENDING_UP",
        contributors=("trend_momentum", "key_level"),
        entry_price=price,
        atr=atr,
    )


class TestStopsAndTargets:
    def test_fallback_without_atr(self):
        stop, target = stops_and_targets(Direction.BUY, 100.0, float("nan"), 90.0, 110.0, ScoringConfig())
        assert stop == pytest.approx(98.0)
        assert target == pytest.approx(104.0)

        stop, target = stops_and_targets(Direction.SELL, 100.0, 0.0, 90.0, 110.0, ScoringConfig())
        assert stop == pytest.approx(102.0)
        assert target == pytest.approx(96.0)

    def test_atr_based_buy(self):
        stop, target = stops_and_targets(Direction.BUY, 100.0, 1.0, 80.0, 100.2, ScoringConfig())
        assert stop == pytest.approx(98.5)
        assert target == pytest.approx(103.0)

    def test_swing_stop_when_nearer(self):
        stop, _ = stops_and_targets(Direction.BUY, 100.0, 1.0, 99.5, 100.2, ScoringConfig())
        assert stop == pytest.approx(99.0)

    def test_target_capped_by_resistance(self):
        _, target = stops_and_targets(Direction.BUY, 100.0, 1.0, 90.0, 102.0, ScoringConfig())
        assert target == pytest.approx(101.5)

    def test_target_capped_by_support(self):
        stop, target = stops_and_targets(Direction.SELL, 100.0, 1.0, 98.0, 110.0, ScoringConfig())
        assert stop == pytest.approx(101.5)
        assert target == pytest.approx(98.5)


class TestSignalEnhancer:
    @pytest.fixture
    def data(self, make_candles, make_trend):
        closes = [v * (1 + 0.001 * math.sin(i)) for i, v in enumerate(make_trend(250, step=0.004))]
        volumes = [100.0] * 249 + [300.0]
        return MultiTimeframeCandles(
            symbol="BTCUSDT",
            frames={
                "1h": make_candles(closes, volumes=volumes),
                "4h": make_candles(make_trend(60, step=0.01), timeframe="4h"),
                "1d": make_candles(make_trend(40, step=0.02), timeframe="1d"),
            },
        )

    def test_scores_aligned_buy(self, data, t0):
        candles = data.get("1h")
        result = SignalEnhancer().enhance(
            fused(Decision.BUY, candles[-1].close, last_atr(candles)), candles, data, now=t0
        )

        assert result is not None
        assert result.direction is Direction.BUY
        assert result.stop_loss < result.entry_price < result.take_profit
        assert result.risk_reward == pytest.approx(2.0)
        assert result.checks["trend_alignment"] == 2
        assert result.checks["volume_ratio"] == 2
        assert result.checks["mtf_agreement"] == 2
        assert result.checks["risk_reward"] == 2
        assert result.checks["confidence"] == 1
        assert result.score == sum(result.checks.values())
        assert result.tier is SignalTier.LEVEL_1
        assert result.origin == "trend_momentum+key_level"
        assert result.created_at == t0

    def test_counter_trend_sell_scores_lower(self, data, t0):
        candles = data.get("1h")
        buy = SignalEnhancer().enhance(fused(Decision.BUY, candles[-1].close, last_atr(candles)), candles, data, t0)
        sell = SignalEnhancer().enhance(fused(Decision.SELL, candles[-1].close, last_atr(candles)), candles, data, t0)

        assert sell is None or sell.score < buy.score

    def test_hold_is_ignored(self, data):
        candles = data.get("1h")
        assert SignalEnhancer().enhance(fused(Decision.HOLD, Decimal("100"), 1.0), candles, data) is None

    def test_min_risk_reward_discards(self, data):
        candles = data.get("1h")
        enhancer = SignalEnhancer(ScoringConfig(min_risk_reward=5.0))
        assert enhancer.enhance(fused(Decision.BUY, candles[-1].close, last_atr(candles)), candles, data) is None

    def test_below_lowest_tier_discards(self, data):
        candles = data.get("1h")
        enhancer = SignalEnhancer(
            ScoringConfig(level_1_threshold=30, level_2_threshold=20, level_3_threshold=15)
        )
        assert enhancer.enhance(fused(Decision.BUY, candles[-1].close, last_atr(candles)), candles, data) is None
