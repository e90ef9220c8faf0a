"""
Unit tests for Pydantic Settings configuration.

Tests defaults, environment loading and lifecycle policy validation.
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from subscription_service.config.settings import Settings


class TestSettings:
    """Tests for Settings configuration."""

    def test_lifecycle_defaults(self):
        """Policy values default to the documented lifecycle."""
        settings = Settings(_env_file=None)

        assert settings.trial_days == 21
        assert settings.grace_period_days == 7
        assert settings.past_due_suspension_days == 7
        assert settings.trial_reminder_offsets == [7, 3, 1]
        assert settings.soft_limit_ratio == Decimal("1.10")
        assert settings.default_locale == "es"
        assert settings.scheduler_enabled is False

    def test_loads_from_env(self, monkeypatch):
        """Settings should load from environment variables."""
        monkeypatch.setenv("TRIAL_DAYS", "14")
        monkeypatch.setenv("TRIAL_REMINDER_OFFSETS", "[5, 2]")
        monkeypatch.setenv("SOFT_LIMIT_RATIO", "1.25")
        monkeypatch.setenv("INTERNAL_API_KEY", "from-env")

        settings = Settings(_env_file=None)

        assert settings.trial_days == 14
        assert settings.trial_reminder_offsets == [5, 2]
        assert settings.soft_limit_ratio == Decimal("1.25")
        assert settings.internal_api_key == "from-env"

    def test_is_production_property(self):
        """is_production should follow the environment name."""
        assert Settings(_env_file=None, environment="production").is_production is True
        development = Settings(_env_file=None, environment="development")
        assert development.is_production is False
        assert development.is_development is True

    def test_server_defaults(self, monkeypatch):
        """Development server binds every interface on port 8000 unless overridden."""
        monkeypatch.delenv("HOST", raising=False)
        monkeypatch.setenv("PORT", "9100")

        settings = Settings(_env_file=None)

        assert settings.host == "0.0.0.0"
        assert settings.port == 9100

    def test_allowed_origins_includes_localhost(self):
        settings = Settings(_env_file=None)

        assert "http://localhost:5173" in settings.allowed_origins
        assert "http://localhost:3000" in settings.allowed_origins

    @pytest.mark.parametrize(
        "overrides",
        [
            {"soft_limit_ratio": Decimal("0.95")},
            {"trial_days": 0},
            {"grace_period_days": -1},
            {"past_due_suspension_days": 0},
            {"trial_reminder_offsets": [3, 0]},
            {"expiration_scan_hour_utc": 24},
            {"reminder_scan_hour_utc": -1},
        ],
    )
    def test_rejects_broken_policy(self, overrides):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **overrides)
