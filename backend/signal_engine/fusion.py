"""Regime-aware fusion of detector candidates into one decision per symbol."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from signal_engine.models import (
    Decision,
    DetectorSignal,
    Direction,
    FusionConfig,
    FusionResult,
)
from signal_engine.regime import MarketRegime

logger = logging.getLogger(__name__)


# Model compatibility per regime. Models missing from a row get 1.0.
REGIME_FACTORS: dict[MarketRegime, dict[str, float]] = {
    MarketRegime.TRENDING_UP: {
        "trend_momentum": 1.3,
        "institutional_flow": 1.1,
        "key_level": 0.9,
        "sentiment_extreme": 0.6,
        "correlation": 0.8,
    },
    MarketRegime.TRENDING_DOWN: {
        "trend_momentum": 1.3,
        "institutional_flow": 1.1,
        "key_level": 0.9,
        "sentiment_extreme": 0.6,
        "correlation": 0.8,
    },
    MarketRegime.RANGING: {
        "trend_momentum": 0.6,
        "volatility_breakout": 0.8,
        "key_level": 1.3,
        "sentiment_extreme": 1.2,
        "correlation": 1.2,
    },
    MarketRegime.VOLATILE: {
        "trend_momentum": 0.8,
        "volatility_breakout": 1.3,
        "key_level": 0.9,
        "sentiment_extreme": 1.1,
        "correlation": 0.7,
    },
    MarketRegime.UNKNOWN: {},
}

WITH_TREND_FACTOR = 1.2
COUNTER_TREND_FACTOR = 0.6


@dataclass(frozen=True)
class PriceContext:
    """Latest price and volatility for the symbol being fused."""

    symbol: str
    price: Decimal | None = None
    atr: float | None = None


def regime_factor(regime: MarketRegime, model: str, direction: Direction) -> float:
    factor = REGIME_FACTORS.get(regime, {}).get(model, 1.0)
    if regime is MarketRegime.TRENDING_UP:
        factor *= WITH_TREND_FACTOR if direction is Direction.BUY else COUNTER_TREND_FACTOR
    elif regime is MarketRegime.TRENDING_DOWN:
        factor *= WITH_TREND_FACTOR if direction is Direction.SELL else COUNTER_TREND_FACTOR
    return factor


def _canonical(candidates: Iterable[DetectorSignal]) -> list[DetectorSignal]:
    return sorted(
        candidates,
        key=lambda c: (c.model, c.direction.value, c.strength, c.reason),
    )


class SignalFusionEngine:
    """Weights each candidate by model prior and regime fit, then votes.

    Output depends only on the candidate set, the regime and the price
    context; candidate order does not matter.
    """

    def __init__(self, config: FusionConfig | None = None):
        self.config = config or FusionConfig()

    def prior(self, model: str) -> float:
        return self.config.model_priors.get(model, self.config.default_prior)

    def fuse(
        self,
        candidates: Iterable[DetectorSignal],
        regime: MarketRegime,
        price_context: PriceContext,
    ) -> FusionResult:
        ordered = _canonical(candidates)
        scores = {Direction.BUY: 0.0, Direction.SELL: 0.0}
        counts = {Direction.BUY: 0, Direction.SELL: 0}
        total_weight = 0.0
        parts: list[str] = []

        for candidate in ordered:
            weight = self.prior(candidate.model) * regime_factor(regime, candidate.model, candidate.direction)
            contribution = candidate.strength * weight
            scores[candidate.direction] += contribution
            counts[candidate.direction] += 1
            total_weight += weight
            parts.append(
                f"{candidate.model}:{candidate.direction.value}:{candidate.strength:.2f}x{weight:.2f}"
            )

        buy = round(scores[Direction.BUY], 6)
        sell = round(scores[Direction.SELL], 6)
        header = f"regime={regime.value} buy={buy:.3f} sell={sell:.3f}"

        def result(decision: Decision, strength: float, confidence: float, note: str) -> FusionResult:
            winners = [c.model for c in ordered if decision.to_direction() is c.direction]
            return FusionResult(
                symbol=price_context.symbol,
                decision=decision,
                aggregated_strength=round(strength, 4),
                confidence=round(confidence, 4),
                reasoning="; ".join([header, note] + parts),
                regime=regime.value,
                buy_score=buy,
                sell_score=sell,
                contributors=tuple(winners),
                entry_price=price_context.price,
                atr=price_context.atr,
            )

        if not ordered or total_weight <= 0:
            return result(Decision.HOLD, 0.0, 0.0, "no candidates")
        if buy == sell:
            return result(Decision.HOLD, buy / total_weight, 0.0, "tie")

        winner = Direction.BUY if buy > sell else Direction.SELL
        win_score, lose_score = max(buy, sell), min(buy, sell)
        strength = win_score / total_weight
        dominance = (win_score - lose_score) / (win_score + lose_score)
        confidence = dominance * min(1.0, 0.5 + 0.25 * counts[winner])

        if confidence < self.config.min_confidence:
            return result(Decision.HOLD, strength, confidence, f"confidence below {self.config.min_confidence}")
        if strength < self.config.min_strength:
            return result(Decision.HOLD, strength, confidence, f"strength below {self.config.min_strength}")

        return result(Decision(winner.value), strength, confidence, f"{winner.value} wins")
