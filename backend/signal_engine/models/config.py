"""Pipeline configuration models shared by the pure signal logic."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from signal_engine.models.signal import SignalTier


# Reliability priors per detection model, on a 0..1 scale.
DEFAULT_MODEL_PRIORS: dict[str, float] = {
    "trend_momentum": 0.9,
    "institutional_flow": 0.8,
    "volatility_breakout": 0.75,
    "key_level": 0.85,
    "sentiment_extreme": 0.6,
    "correlation": 0.65,
}


class FusionConfig(BaseModel):
    """Fusion weighting and decision floors."""

    model_priors: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_MODEL_PRIORS))
    default_prior: float = 0.5
    min_confidence: float = 0.3
    min_strength: float = 0.2


class ScoringConfig(BaseModel):
    """Confirmation check weights and tier thresholds."""

    level_1_threshold: int = 8
    level_2_threshold: int = 6
    level_3_threshold: int = 4
    min_risk_reward: float = 1.5

    atr_period: int = 14
    volume_ratio_threshold: float = 1.2
    swing_lookback: int = 50
    fallback_stop_pct: float = 0.02
    fallback_target_pct: float = 0.04

    trend_weight: int = 2
    volume_weight: int = 2
    band_weight: int = 1
    mtf_weight: int = 1  # per agreeing higher timeframe
    risk_reward_weight: int = 2
    confidence_weight: int = 1
    confidence_bonus_at: float = 0.6

    @model_validator(mode="after")
    def _validate(self):
        if not (self.level_1_threshold > self.level_2_threshold > self.level_3_threshold):
            raise ValueError(
                "tier thresholds must be strictly descending: "
                f"{self.level_1_threshold}/{self.level_2_threshold}/{self.level_3_threshold}"
            )
        if self.min_risk_reward <= 0:
            raise ValueError("min_risk_reward must be positive")
        return self

    def tier_for(self, score: int) -> SignalTier | None:
        if score >= self.level_1_threshold:
            return SignalTier.LEVEL_1
        if score >= self.level_2_threshold:
            return SignalTier.LEVEL_2
        if score >= self.level_3_threshold:
            return SignalTier.LEVEL_3
        return None


class FilterConfig(BaseModel):
    """Cooldown window and per-tier daily quotas."""

    cooldown_hours: float = 1.0
    daily_quota: dict[SignalTier, int] = Field(
        default_factory=lambda: {
            SignalTier.LEVEL_1: 5,
            SignalTier.LEVEL_2: 8,
            SignalTier.LEVEL_3: 7,
        }
    )

    @model_validator(mode="after")
    def _validate(self):
        if self.cooldown_hours < 0:
            raise ValueError("cooldown_hours must be >= 0")
        for tier, cap in self.daily_quota.items():
            if cap < 0:
                raise ValueError(f"daily quota for {tier.value} must be >= 0")
        return self

    def quota_for(self, tier: SignalTier) -> int:
        return self.daily_quota.get(tier, 0)
