"""Feature flags loaded from pipeline.yaml.

Flags are read once at the start of every tick, so edits to the file take
effect on the next run without a restart. A missing file means everything
is enabled and no user has opted out.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, model_validator

logger = logging.getLogger(__name__)


class UserFlags(BaseModel):
    """Per-user notification switches, keyed by email."""

    email: str
    notifications_enabled: bool = True
    copy_trading_alerts: bool = True
    signal_alerts: bool = True


class FeatureFlags(BaseModel):
    """Top-level pipeline.yaml configuration."""

    analysis_enabled: bool = True
    copy_trading_enabled: bool = True
    notifications_enabled: bool = True
    signal_alerts_enabled: bool = True
    daily_summary_enabled: bool = True
    users: list[UserFlags] = []

    @model_validator(mode="after")
    def _validate(self):
        seen: set[str] = set()
        for user in self.users:
            email = user.email.strip().lower()
            if email in seen:
                raise ValueError(f"duplicate user entry for '{user.email}'")
            seen.add(email)
        return self

    def _user(self, email: str) -> UserFlags | None:
        key = email.strip().lower()
        for user in self.users:
            if user.email.strip().lower() == key:
                return user
        return None

    def copy_trading_recipients(self, emails: list[str]) -> list[str]:
        """Drop recipients who switched off notifications or copy-trade alerts."""
        kept = []
        for email in emails:
            user = self._user(email)
            if user is None or (user.notifications_enabled and user.copy_trading_alerts):
                kept.append(email)
        return kept

    def signal_recipients(self, emails: list[str]) -> list[str]:
        """Drop recipients who switched off notifications or signal alerts."""
        kept = []
        for email in emails:
            user = self._user(email)
            if user is None or (user.notifications_enabled and user.signal_alerts):
                kept.append(email)
        return kept


_DEFAULT_PATH = Path(__file__).parent.parent / "pipeline.yaml"


def load_feature_flags(path: Path | None = None) -> FeatureFlags:
    """Load feature flags from YAML, defaulting to all-enabled if the file doesn't exist."""
    config_path = path or _DEFAULT_PATH

    if not config_path.exists():
        logger.debug("No pipeline.yaml found at %s, all features enabled", config_path)
        return FeatureFlags()

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    return FeatureFlags(**raw)


class FeatureFlagStore:
    """Reads the flags file on demand; callers take one snapshot per tick.

    A broken file keeps the last good snapshot instead of stopping the tick.
    """

    def __init__(self, path: Path | None = None):
        self.path = path
        self._last_good = FeatureFlags()

    def snapshot(self) -> FeatureFlags:
        try:
            self._last_good = load_feature_flags(self.path)
        except Exception as e:
            logger.warning(f"Failed to read feature flags, keeping previous values: {e}")
        return self._last_good
