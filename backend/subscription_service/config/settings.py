"""
Application Settings for the Subscription Service

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Lifecycle policy values (trial length, grace period, soft limit) live here
    so operators can tune them per environment without code changes.
    """

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS Configuration
    allowed_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Database Configuration (SQLModel/SQLAlchemy)
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    # Lifecycle Policy
    trial_days: int = 21
    grace_period_days: int = 7
    past_due_suspension_days: int = 7
    trial_reminder_offsets: list[int] = [7, 3, 1]
    soft_limit_ratio: Decimal = Decimal("1.10")
    default_locale: str = "es"
    default_currency: str = "COP"

    # Organization (identity) service sync
    organization_service_url: Optional[str] = None
    organization_service_api_key: Optional[str] = None

    # Outbound lifecycle events
    events_webhook_url: Optional[str] = None
    events_webhook_api_key: Optional[str] = None

    # Timeout applied to each best-effort outbound call
    integration_timeout_seconds: float = 5.0

    # Security
    internal_api_key: Optional[str] = None
    admin_api_key: Optional[str] = None
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    paypal_webhook_token: Optional[str] = None

    # Scheduler
    scheduler_enabled: bool = False
    expiration_scan_hour_utc: int = 2
    reminder_scan_hour_utc: int = 8

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_lifecycle_policy(self) -> "Settings":
        """Reject policy values that would break the lifecycle math."""
        if self.soft_limit_ratio < 1:
            raise ValueError("SOFT_LIMIT_RATIO must be >= 1")

        for name in ("trial_days", "grace_period_days", "past_due_suspension_days"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name.upper()} must be positive")

        if any(offset <= 0 for offset in self.trial_reminder_offsets):
            raise ValueError("TRIAL_REMINDER_OFFSETS must be positive day counts")

        for name in ("expiration_scan_hour_utc", "reminder_scan_hour_utc"):
            if not 0 <= getattr(self, name) <= 23:
                raise ValueError(f"{name.upper()} must be between 0 and 23")

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
