"""
HMS API configuration, read from the environment and an optional .env file.

Missing JWT secrets stop the process at startup unless TESTING is set.

Usage:
    from config.settings import get_settings

    settings = get_settings()
    print(settings.auth.jwt_secret.get_secret_value())

Settings are frozen once built and handed to the app factory, which passes
them on to every service. Tests can reset the singleton via
get_settings.cache_clear() or build AppSettings(...) directly.
"""

import os
import re
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings

_DURATION_RE = re.compile(r"^(-?\d+)\s*([smhd]?)$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def _is_testing() -> bool:
    """Check if running in test mode."""
    return (
        os.getenv("TESTING", "").lower() in ("true", "1")
        or os.getenv("FLASK_ENV", "") == "testing"
    )


def parse_duration(value: str) -> timedelta:
    """Parse a duration string such as "7d", "15m" or "3600" into a timedelta.

    A leading minus is accepted; a negative lifetime yields tokens that are
    already expired when issued.
    """
    match = _DURATION_RE.match(str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid duration: {value!r} (expected e.g. '3600', '15m', '7d')")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _DURATION_UNITS[unit])


# =============================================================================
# Nested Settings Groups
# =============================================================================


class AuthSettings(BaseSettings):
    """JWT, password policy and account bootstrap configuration."""

    model_config = {"env_prefix": "", "extra": "ignore", "frozen": True}

    jwt_secret: SecretStr = SecretStr("")
    jwt_refresh_secret: SecretStr = SecretStr("")
    jwt_algorithm: str = "HS256"
    jwt_expires_in: str = "7d"
    jwt_refresh_expires_in: str = "30d"
    jwt_issuer: str = "hms-api"
    jwt_audience: str = "hms-users"

    # Single-use tokens
    password_reset_expiry_minutes: int = 60

    # Password policy
    password_min_length: int = 8
    password_require_uppercase: bool = True
    password_require_lowercase: bool = True
    password_require_digit: bool = True
    password_require_special: bool = True

    # Role given to self-registered accounts
    default_role: str = "PATIENT"

    # Bootstrap administrator (seeded on first start when both are set)
    admin_email: str = ""
    admin_password: SecretStr = SecretStr("")

    @field_validator("jwt_expires_in", "jwt_refresh_expires_in")
    @classmethod
    def _validate_duration(cls, v: str) -> str:
        parse_duration(v)
        return v

    @property
    def access_token_ttl(self) -> timedelta:
        return parse_duration(self.jwt_expires_in)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return parse_duration(self.jwt_refresh_expires_in)


class DatabaseSettings(BaseSettings):
    """Database configuration."""

    model_config = {"env_prefix": "", "extra": "ignore", "frozen": True}

    database_path: Optional[Path] = None
    database_pool_size: int = 10

    @property
    def resolved_path(self) -> Path:
        """SQLite path, defaulting to data/hms.db beside the project root."""
        if self.database_path is not None:
            return self.database_path
        return Path(__file__).parent.parent / "data" / "hms.db"


class EmailSettings(BaseSettings):
    """Outbound SMTP configuration."""

    model_config = {"env_prefix": "SMTP_", "extra": "ignore", "frozen": True}

    host: str = ""
    port: int = 587
    use_tls: bool = True
    username: str = ""
    password: SecretStr = SecretStr("")
    from_email: str = "noreply@hms.local"
    from_name: str = "Hospital Management System"
    timeout: int = 10

    @property
    def enabled(self) -> bool:
        return bool(self.host)


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration."""

    model_config = {"env_prefix": "RATE_LIMIT_", "extra": "ignore", "frozen": True}

    enabled: bool = True
    default: str = "100 per 15 minutes"
    auth: str = "5 per 15 minutes"
    password: str = "3 per hour"
    storage: str = "memory://"


# =============================================================================
# Root Settings
# =============================================================================


class AppSettings(BaseSettings):
    """Root application settings composing all sub-settings."""

    model_config = {
        "env_prefix": "",
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "frozen": True,
    }

    app_name: str = "Hospital Management System API"
    app_version: str = "1.0.0"
    environment: str = "development"
    api_prefix: str = "/api/v1"
    frontend_url: str = "http://localhost:3000"
    cors_origins: List[str] = ["http://localhost:3000"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: str = ""

    # Each group reads its own env prefix, so it is built on its own
    auth: AuthSettings = None  # type: ignore[assignment]
    database: DatabaseSettings = None  # type: ignore[assignment]
    smtp: EmailSettings = None  # type: ignore[assignment]
    rate_limit: RateLimitSettings = None  # type: ignore[assignment]

    @model_validator(mode="before")
    @classmethod
    def _build_groups(cls, values):
        groups = {
            "auth": AuthSettings,
            "database": DatabaseSettings,
            "smtp": EmailSettings,
            "rate_limit": RateLimitSettings,
        }
        for field, group in groups.items():
            if values.get(field) is None:
                values[field] = group()
        return values

    @model_validator(mode="after")
    def _validate_required_secrets(self):
        """Both JWT secrets are mandatory unless running tests."""
        if _is_testing() or self.environment == "testing":
            return self

        for name in ("jwt_secret", "jwt_refresh_secret"):
            if not getattr(self.auth, name).get_secret_value():
                raise ValueError(
                    f"{name.upper()} env var is required. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )

        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Process-wide settings, built and validated on first use."""
    return AppSettings()
