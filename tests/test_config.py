"""
Tests for environment-driven settings.
"""

import pytest

import config
from config import Settings


@pytest.fixture
def no_dotenv(monkeypatch, tmp_path):
    """Point .env loading at an empty directory so only the test env counts."""
    monkeypatch.setattr(config, "ENV_PATH", tmp_path / ".env")


class TestSettings:
    """Test Settings.from_env."""

    def test_defaults(self, monkeypatch, no_dotenv):
        for name in ("SCORING_SCHEME", "BATCH_SIZE", "CACHE_TTL", "UPDATE_INTERVAL_HOURS", "TWITTER_BEARER_TOKEN"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert settings.scoring_scheme == "comprehensive"
        assert settings.batch_size == 3
        assert settings.cache_ttl == 3600
        assert settings.update_interval_hours == 13
        assert settings.twitter_bearer_token is None

    def test_overrides(self, monkeypatch, no_dotenv):
        monkeypatch.setenv("SCORING_SCHEME", "Archive_DNS")
        monkeypatch.setenv("BATCH_SIZE", "5")
        monkeypatch.setenv("PROBE_TIMEOUT", "2.5")
        monkeypatch.setenv("WHOIS_ENABLED", "yes")
        monkeypatch.setenv("LOG_LEVEL", "warning")
        monkeypatch.setenv("DOMAINS_MONITOR_TOKEN", "secret")
        monkeypatch.setenv("RATE_LIMIT_PER_MINUTE", "5")
        monkeypatch.delenv("RATE_LIMIT_PER_HOUR", raising=False)

        settings = Settings.from_env()

        assert settings.scoring_scheme == "archive_dns"
        assert settings.batch_size == 5
        assert settings.probe_timeout == 2.5
        assert settings.whois_enabled is True
        assert settings.log_level == "WARNING"
        assert settings.domains_monitor_token == "secret"
        assert settings.rate_limit_per_minute == 5
        assert settings.rate_limit_per_hour == 200

    def test_blank_values_fall_back_to_defaults(self, monkeypatch, no_dotenv):
        monkeypatch.setenv("BATCH_SIZE", "   ")
        monkeypatch.setenv("TWITTER_BEARER_TOKEN", "")

        settings = Settings.from_env()

        assert settings.batch_size == 3
        assert settings.twitter_bearer_token is None

    def test_invalid_number(self, monkeypatch, no_dotenv):
        monkeypatch.setenv("CACHE_TTL", "an hour")

        with pytest.raises(ValueError):
            Settings.from_env()

    def test_settings_are_frozen(self):
        with pytest.raises(AttributeError):
            Settings().batch_size = 10
