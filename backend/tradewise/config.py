"""Application configuration."""

from functools import lru_cache

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from signal_engine.models import FilterConfig, FusionConfig, ScoringConfig, SignalTier
from tradewise.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "postgresql://localhost/tradewise"

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Market data provider
    market_data_base_url: str = "https://api.binance.com"
    http_timeout_seconds: float = 10.0
    retry_attempts: int = 3
    retry_backoff_seconds: float = 0.5

    # Analysis
    symbols: list[str] = ["BTCUSDT", "ETHUSDT", "SOLUSDT", "BNBUSDT", "XRPUSDT"]
    benchmark_symbol: str = "BTCUSDT"
    candle_limit: int = 250
    primary_timeframe: str = "1h"
    concurrency_limit: int = 5

    # Market data cache
    cache_ttl_ratio: float = 0.25
    cache_grace_multiplier: float = 3.0
    cache_cleanup_interval_seconds: int = 600

    # Scoring (tier thresholds must be strictly descending)
    level_1_threshold: int = 8
    level_2_threshold: int = 6
    level_3_threshold: int = 4
    min_risk_reward: float = 1.5
    min_confidence: float = 0.3

    # Filter
    cooldown_hours: float = 1.0
    daily_quota_level_1: int = 5
    daily_quota_level_2: int = 8
    daily_quota_level_3: int = 7

    # Lifecycle
    signal_horizon_hours: float = 24.0

    # Schedules
    analysis_interval_seconds: int = 900
    lifecycle_interval_seconds: int = 60
    order_scan_interval_seconds: int = 60
    daily_summary_hour_utc: int = 0

    # Copy trading provider
    copy_trading_base_url: str = "https://www.binance.com"
    copy_trading_order_endpoint: str = "/bapi/futures/v1/friendly/future/copy-trade/lead-portfolio/order-history"
    copy_trading_window_hours: int = 12
    copy_trading_page_size: int = 10

    # Notifications (mail is only logged unless smtp_enabled)
    smtp_enabled: bool = False
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    mail_from: str = "tradewise@localhost"
    signal_alert_recipients: list[str] = []
    notification_retry_attempts: int = 3
    notification_retry_backoff_seconds: float = 2.0

    # Feature flags file (pipeline.yaml)
    feature_flags_path: str = ""

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    def scoring_config(self) -> ScoringConfig:
        return ScoringConfig(
            level_1_threshold=self.level_1_threshold,
            level_2_threshold=self.level_2_threshold,
            level_3_threshold=self.level_3_threshold,
            min_risk_reward=self.min_risk_reward,
        )

    def filter_config(self) -> FilterConfig:
        return FilterConfig(
            cooldown_hours=self.cooldown_hours,
            daily_quota={
                SignalTier.LEVEL_1: self.daily_quota_level_1,
                SignalTier.LEVEL_2: self.daily_quota_level_2,
                SignalTier.LEVEL_3: self.daily_quota_level_3,
            },
        )

    def fusion_config(self) -> FusionConfig:
        return FusionConfig(min_confidence=self.min_confidence)


def validate_settings(settings: Settings) -> None:
    """Fail fast on missing or inconsistent configuration.

    Raises:
        ConfigurationError: Describing every problem found.
    """
    problems: list[str] = []

    for name, builder in (
        ("scoring", settings.scoring_config),
        ("filter", settings.filter_config),
        ("fusion", settings.fusion_config),
    ):
        try:
            builder()
        except ValidationError as e:
            problems.append(f"{name}: {e.errors()[0]['msg']}")

    for name in (
        "analysis_interval_seconds",
        "lifecycle_interval_seconds",
        "order_scan_interval_seconds",
        "cache_cleanup_interval_seconds",
        "concurrency_limit",
        "candle_limit",
    ):
        if getattr(settings, name) <= 0:
            problems.append(f"{name} must be positive")

    if settings.http_timeout_seconds <= 0:
        problems.append("http_timeout_seconds must be positive")
    if settings.retry_attempts < 1:
        problems.append("retry_attempts must be >= 1")
    if settings.signal_horizon_hours <= 0:
        problems.append("signal_horizon_hours must be positive")
    if not settings.symbols:
        problems.append("symbols must not be empty")
    if not settings.market_data_base_url:
        problems.append("market_data_base_url is required")
    if not settings.copy_trading_base_url or not settings.copy_trading_order_endpoint:
        problems.append("copy_trading_base_url and copy_trading_order_endpoint are required")
    if settings.smtp_enabled and not settings.smtp_host:
        problems.append("smtp_host is required when smtp_enabled is set")
    if not 0 <= settings.daily_summary_hour_utc <= 23:
        problems.append("daily_summary_hour_utc must be in 0..23")

    if problems:
        raise ConfigurationError("Invalid configuration: " + "; ".join(problems))


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
