"""Tests for settings validation and pipeline.yaml feature flags."""

import pytest
from pydantic import ValidationError

from signal_engine.models import SignalTier
from tradewise.config import Settings, validate_settings
from tradewise.errors import ConfigurationError
from tradewise.feature_flags import FeatureFlags, FeatureFlagStore, UserFlags, load_feature_flags


def settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestValidateSettings:
    def test_defaults_are_valid(self):
        validate_settings(settings())

    def test_thresholds_must_descend(self):
        with pytest.raises(ConfigurationError, match="scoring"):
            validate_settings(settings(level_1_threshold=5, level_2_threshold=6))

    def test_reports_every_problem(self):
        with pytest.raises(ConfigurationError) as exc:
            validate_settings(settings(analysis_interval_seconds=0, symbols=[], retry_attempts=0))

        message = str(exc.value)
        assert "analysis_interval_seconds" in message
        assert "symbols" in message
        assert "retry_attempts" in message

    def test_smtp_host_required_when_enabled(self):
        with pytest.raises(ConfigurationError, match="smtp_host"):
            validate_settings(settings(smtp_enabled=True))

        validate_settings(settings(smtp_enabled=True, smtp_host="smtp.example.com"))

    def test_negative_quota(self):
        with pytest.raises(ConfigurationError, match="filter"):
            validate_settings(settings(daily_quota_level_2=-1))

    def test_summary_hour_range(self):
        with pytest.raises(ConfigurationError, match="daily_summary_hour_utc"):
            validate_settings(settings(daily_summary_hour_utc=24))

    def test_filter_config_from_settings(self):
        config = settings(daily_quota_level_1=2, cooldown_hours=0).filter_config()

        assert config.quota_for(SignalTier.LEVEL_1) == 2
        assert config.cooldown_hours == 0


class TestFeatureFlags:
    def test_defaults_enable_everything(self):
        flags = FeatureFlags()

        assert flags.analysis_enabled
        assert flags.copy_trading_enabled
        assert flags.notifications_enabled

    def test_duplicate_user_rejected(self):
        with pytest.raises(ValidationError):
            FeatureFlags(users=[UserFlags(email="a@example.com"), UserFlags(email=" A@example.com")])

    def test_recipient_filtering(self):
        flags = FeatureFlags(
            users=[
                UserFlags(email="quiet@example.com", notifications_enabled=False),
                UserFlags(email="signals-only@example.com", copy_trading_alerts=False),
            ]
        )
        emails = ["quiet@example.com", "signals-only@example.com", "new@example.com"]

        assert flags.copy_trading_recipients(emails) == ["new@example.com"]
        assert flags.signal_recipients(emails) == ["signals-only@example.com", "new@example.com"]

    def test_missing_file_defaults(self, tmp_path):
        assert load_feature_flags(tmp_path / "absent.yaml") == FeatureFlags()

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "pipeline.yaml"
        path.write_text(
            "copy_trading_enabled: false\n"
            "users:\n"
            "  - email: a@example.com\n"
            "    signal_alerts: false\n"
        )
        flags = load_feature_flags(path)

        assert flags.copy_trading_enabled is False
        assert flags.users[0].signal_alerts is False

    def test_empty_file(self, tmp_path):
        path = tmp_path / "pipeline.yaml"
        path.write_text("")
        assert load_feature_flags(path) == FeatureFlags()

    def test_store_keeps_last_good_snapshot(self, tmp_path):
        path = tmp_path / "pipeline.yaml"
        path.write_text("analysis_enabled: false\n")
        store = FeatureFlagStore(path)
        assert store.snapshot().analysis_enabled is False

        path.write_text("analysis_enabled: [not, a, bool]\n")
        assert store.snapshot().analysis_enabled is False

        path.write_text("analysis_enabled: true\n")
        assert store.snapshot().analysis_enabled is True


class TestMailSenderSelection:
    def test_disabled_smtp_logs_only(self):
        from tradewise.main import build_mail_sender
        from tradewise.services import LogMailSender

        assert isinstance(build_mail_sender(settings()), LogMailSender)

    def test_enabled_smtp(self):
        from tradewise.main import build_mail_sender
        from tradewise.services import SmtpMailSender

        sender = build_mail_sender(settings(smtp_enabled=True, smtp_host="smtp.example.com", smtp_port=2525))

        assert isinstance(sender, SmtpMailSender)
        assert sender.port == 2525
