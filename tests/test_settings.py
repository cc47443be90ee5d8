"""Tests for central configuration settings."""

import os
from datetime import timedelta
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from config.settings import (
    AppSettings,
    AuthSettings,
    DatabaseSettings,
    EmailSettings,
    RateLimitSettings,
    get_settings,
    parse_duration,
)


class TestParseDuration:
    @pytest.mark.parametrize("value,expected", [
        ("3600", timedelta(hours=1)),
        ("45s", timedelta(seconds=45)),
        ("15m", timedelta(minutes=15)),
        ("2h", timedelta(hours=2)),
        ("7d", timedelta(days=7)),
        ("-1s", timedelta(seconds=-1)),
    ])
    def test_valid(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "7w", "abc", "1.5h"])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="Invalid duration"):
            parse_duration(value)


class TestAuthSettings:
    def test_defaults_applied(self):
        settings = AuthSettings()
        assert settings.jwt_algorithm == "HS256"
        assert settings.jwt_expires_in == "7d"
        assert settings.jwt_refresh_expires_in == "30d"
        assert settings.access_token_ttl == timedelta(days=7)
        assert settings.refresh_token_ttl == timedelta(days=30)
        assert settings.password_reset_expiry_minutes == 60
        assert settings.password_min_length == 8
        assert settings.default_role == "PATIENT"

    def test_env_override(self):
        with patch.dict(os.environ, {
            "JWT_EXPIRES_IN": "1h",
            "JWT_ISSUER": "other-issuer",
            "PASSWORD_MIN_LENGTH": "12",
        }, clear=False):
            settings = AuthSettings()
            assert settings.access_token_ttl == timedelta(hours=1)
            assert settings.jwt_issuer == "other-issuer"
            assert settings.password_min_length == 12

    def test_invalid_duration_rejected(self):
        with pytest.raises(ValueError):
            AuthSettings(jwt_expires_in="soon")

    def test_secrets_are_masked(self):
        settings = AuthSettings(jwt_secret="super-secret-value")
        assert "super-secret-value" not in repr(settings)
        assert settings.jwt_secret.get_secret_value() == "super-secret-value"


class TestGroupSettings:
    def test_smtp_prefix(self):
        with patch.dict(os.environ, {"SMTP_HOST": "mail.example.com", "SMTP_PORT": "2525"}, clear=False):
            settings = EmailSettings()
            assert settings.enabled is True
            assert settings.port == 2525

    def test_smtp_disabled_without_host(self):
        env = {k: v for k, v in os.environ.items() if not k.startswith("SMTP_")}
        with patch.dict(os.environ, env, clear=True):
            assert EmailSettings().enabled is False

    def test_rate_limit_defaults(self):
        env = {k: v for k, v in os.environ.items() if not k.startswith("RATE_LIMIT_")}
        with patch.dict(os.environ, env, clear=True):
            settings = RateLimitSettings()
            assert settings.enabled is True
            assert settings.auth == "5 per 15 minutes"
            assert settings.password == "3 per hour"
            assert settings.storage == "memory://"

    def test_database_path_default(self, tmp_path):
        assert DatabaseSettings().resolved_path.name == "hms.db"
        assert DatabaseSettings(database_path=tmp_path / "x.db").resolved_path == tmp_path / "x.db"


class TestAppSettings:
    def test_nested_groups_initialized(self):
        settings = AppSettings()
        assert isinstance(settings.auth, AuthSettings)
        assert isinstance(settings.database, DatabaseSettings)
        assert isinstance(settings.smtp, EmailSettings)
        assert isinstance(settings.rate_limit, RateLimitSettings)
        assert settings.api_prefix == "/api/v1"

    def test_frozen(self):
        settings = AppSettings()
        with pytest.raises(ValidationError):
            settings.api_prefix = "/other"

    def test_missing_jwt_secret_raises_outside_testing(self):
        """Missing JWT_SECRET should raise ValueError in non-test mode."""
        env = os.environ.copy()
        for key in ("JWT_SECRET", "JWT_REFRESH_SECRET", "TESTING", "FLASK_ENV", "ENVIRONMENT"):
            env.pop(key, None)
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ValueError, match="JWT_SECRET"):
                AppSettings()

    def test_missing_refresh_secret_raises_outside_testing(self):
        env = os.environ.copy()
        for key in ("JWT_REFRESH_SECRET", "TESTING", "FLASK_ENV", "ENVIRONMENT"):
            env.pop(key, None)
        env["JWT_SECRET"] = "present"
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ValueError, match="JWT_REFRESH_SECRET"):
                AppSettings()

    def test_is_production(self):
        assert AppSettings(environment="production").is_production is True
        assert AppSettings(environment="development").is_production is False


class TestGetSettings:
    def test_singleton(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
