"""Confirmation checks, stop/target placement, scoring and tiering."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Sequence

import numpy as np

from signal_engine.detectors.features import last_atr, volume_ratio
from signal_engine.indicators import bollinger, last, sma
from signal_engine.models import (
    Candle,
    Direction,
    FusionResult,
    MultiTimeframeCandles,
    ScoredSignal,
    ScoringConfig,
)
from signal_engine.models.candle import closes, highs, lows

logger = logging.getLogger(__name__)

HIGHER_TIMEFRAMES = ("4h", "1d")
PREFERRED_RISK_REWARD = 2.0
STOP_ATR = 1.5
TARGET_ATR = 3.0
SWING_BUFFER_ATR = 0.5


def _to_price(value: float) -> Decimal:
    return Decimal(str(round(value, 8)))


def stops_and_targets(
    direction: Direction,
    price: float,
    atr_value: float,
    swing_low: float,
    swing_high: float,
    config: ScoringConfig,
) -> tuple[float, float]:
    """Stop at the nearer of 1.5 ATR or just past the recent swing; target 3 ATR away,
    pulled in to the opposite swing when that level sits between price and target.

    Without a usable ATR, fall back to fixed percentages of price.
    """
    if math.isnan(atr_value) or atr_value <= 0:
        if direction is Direction.BUY:
            return price * (1 - config.fallback_stop_pct), price * (1 + config.fallback_target_pct)
        return price * (1 + config.fallback_stop_pct), price * (1 - config.fallback_target_pct)

    buffer = SWING_BUFFER_ATR * atr_value
    if direction is Direction.BUY:
        stop = max(swing_low - buffer, price - STOP_ATR * atr_value)
        target = price + TARGET_ATR * atr_value
        resistance = swing_high - buffer
        if price < resistance < target:
            target = resistance
    else:
        stop = min(swing_high + buffer, price + STOP_ATR * atr_value)
        target = price - TARGET_ATR * atr_value
        support = swing_low + buffer
        if target < support < price:
            target = support
    return stop, target


class SignalEnhancer:
    """Turns an actionable FusionResult into a ScoredSignal, or discards it."""

    def __init__(self, config: ScoringConfig | None = None):
        self.config = config or ScoringConfig()

    def enhance(
        self,
        fusion: FusionResult,
        candles: Sequence[Candle],
        data: MultiTimeframeCandles,
        now: datetime | None = None,
    ) -> ScoredSignal | None:
        direction = fusion.decision.to_direction()
        if direction is None or not candles:
            return None

        cfg = self.config
        price = float(fusion.entry_price) if fusion.entry_price is not None else float(candles[-1].close)
        if price <= 0:
            return None

        atr_value = fusion.atr if fusion.atr is not None else last_atr(candles, cfg.atr_period)
        window = candles[-cfg.swing_lookback:]
        swing_low = float(np.min(lows(window)))
        swing_high = float(np.max(highs(window)))
        stop, target = stops_and_targets(direction, price, atr_value, swing_low, swing_high, cfg)
        if target <= 0 or stop <= 0:
            logger.debug(f"{fusion.symbol}: non-positive stop/target, discarded")
            return None

        risk = abs(price - stop)
        reward = abs(target - price)
        risk_reward = round(reward / risk, 4) if risk > 0 else 0.0
        if risk_reward < cfg.min_risk_reward:
            logger.debug(f"{fusion.symbol}: R/R {risk_reward:.2f} < {cfg.min_risk_reward}, discarded")
            return None

        checks = {
            "trend_alignment": self._trend_alignment(candles, direction, price),
            "volume_ratio": self._volume(candles),
            "volatility_band": self._band_position(candles, direction, price),
            "mtf_agreement": self._mtf_agreement(data, direction),
            "risk_reward": (
                cfg.risk_reward_weight
                if risk_reward >= PREFERRED_RISK_REWARD
                else cfg.risk_reward_weight // 2
            ),
            "confidence": cfg.confidence_weight if fusion.confidence >= cfg.confidence_bonus_at else 0,
        }
        score = sum(checks.values())
        tier = cfg.tier_for(score)
        if tier is None:
            logger.debug(f"{fusion.symbol}: score {score} below lowest tier, discarded")
            return None

        return ScoredSignal(
            symbol=fusion.symbol,
            direction=direction,
            origin="+".join(fusion.contributors) or "fusion",
            entry_price=_to_price(price),
            stop_loss=_to_price(stop),
            take_profit=_to_price(target),
            score=score,
            tier=tier,
            risk_reward=risk_reward,
            confidence=fusion.confidence,
            checks=checks,
            reason=fusion.reasoning,
            regime=fusion.regime,
            created_at=now or datetime.now(timezone.utc),
        )

    def _trend_alignment(self, candles: Sequence[Candle], direction: Direction, price: float) -> int:
        mean = last(sma(closes(candles), 50))
        if math.isnan(mean):
            return 0
        aligned = price > mean if direction is Direction.BUY else price < mean
        return self.config.trend_weight if aligned else 0

    def _volume(self, candles: Sequence[Candle]) -> int:
        ratio = volume_ratio(candles)
        if math.isnan(ratio):
            return 0
        return self.config.volume_weight if ratio > self.config.volume_ratio_threshold else 0

    def _band_position(self, candles: Sequence[Candle], direction: Direction, price: float) -> int:
        upper, _, lower = bollinger(closes(candles), 20, 2.0)
        top, bottom = last(upper), last(lower)
        if math.isnan(top) or math.isnan(bottom) or top <= bottom:
            return 0
        percent_b = (price - bottom) / (top - bottom)
        # Room left toward the far band
        ok = percent_b < 0.8 if direction is Direction.BUY else percent_b > 0.2
        return self.config.band_weight if ok else 0

    def _mtf_agreement(self, data: MultiTimeframeCandles, direction: Direction) -> int:
        points = 0
        for tf in HIGHER_TIMEFRAMES:
            frame = data.get(tf)
            if len(frame) < 20:
                continue
            mean = last(sma(closes(frame), 20))
            if math.isnan(mean):
                continue
            close = float(frame[-1].close)
            if (close > mean) == (direction is Direction.BUY):
                points += self.config.mtf_weight
        return points
