"""Centralized configuration using pydantic-settings.

All configuration is loaded from environment variables and .env files.
This is the single source of truth for all platform configuration.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Main application settings.

    All settings can be overridden via environment variables.
    For nested settings, use double underscore: BILLING__INVOICE_DUE_DAYS=14
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ============================================================
    # Core Application Settings
    # ============================================================

    app_name: str = Field("reelstream-billing", description="Application name")
    app_version: str = Field("1.0.0", description="Application version")
    environment: Environment = Field(Environment.DEVELOPMENT, description="Deployment environment")
    debug: bool = Field(False, description="Debug mode")

    # ============================================================
    # Database Configuration
    # ============================================================

    class DatabaseSettings(BaseModel):
        """Database configuration."""

        url: str | None = Field(None, description="Full database URL")
        host: str = Field("localhost", description="Database host")
        port: int = Field(5432, description="Database port")
        database: str = Field("reelstream", description="Database name")
        username: str = Field("reelstream", description="Database username")
        password: str = Field("", description="Database password")

        # Connection pool
        pool_size: int = Field(10, description="Connection pool size")
        max_overflow: int = Field(20, description="Max overflow connections")
        pool_timeout: int = Field(30, description="Pool timeout in seconds")
        pool_recycle: int = Field(3600, description="Recycle connections after seconds")
        pool_pre_ping: bool = Field(True, description="Test connections before use")

        echo: bool = Field(False, description="Echo SQL statements")

    database: DatabaseSettings = DatabaseSettings()  # type: ignore[call-arg]

    # ============================================================
    # Celery & Task Queue
    # ============================================================

    class CelerySettings(BaseModel):
        """Celery configuration."""

        broker_url: str = Field("redis://localhost:6379/0", description="Broker URL")
        result_backend: str = Field("redis://localhost:6379/1", description="Result backend")
        timezone: str = Field("UTC", description="Timezone")
        enable_utc: bool = Field(True, description="Enable UTC")

        # Plan-change invoice jobs
        plan_change_queue: str = Field("billing_plan_change", description="Plan-change job queue")
        plan_change_max_retries: int = Field(5, description="Max redeliveries of a failed job")
        plan_change_backoff_max: int = Field(600, description="Retry backoff cap in seconds")

        task_soft_time_limit: int = Field(240, description="Soft time limit")
        task_time_limit: int = Field(300, description="Hard time limit")

    celery: CelerySettings = CelerySettings()  # type: ignore[call-arg]

    # ============================================================
    # Observability
    # ============================================================

    class ObservabilitySettings(BaseModel):
        """Logging configuration."""

        log_level: LogLevel = Field(LogLevel.INFO, description="Log level")
        log_format: str = Field("json", description="Log format (json or console)")
        enable_callsite_info: bool = Field(False, description="Add thread name to log entries")

    observability: ObservabilitySettings = ObservabilitySettings()  # type: ignore[call-arg]

    # ============================================================
    # Billing Configuration
    # ============================================================

    class BillingSettings(BaseModel):
        """Billing system configuration."""

        default_currency: str = Field("USD", description="Default billing currency")

        # Invoicing
        invoice_number_prefix: str = Field("INV", description="Invoice number provider prefix")
        invoice_due_days: int = Field(7, description="Default invoice due period in days")

        # Plan changes
        addon_estimated_period_days: int = Field(
            30, description="Assumed add-on period length when the period end is unknown"
        )

        # Usage
        usage_quota_thresholds: list[int] = Field(
            default_factory=lambda: [75, 90, 100],
            description="Quota percentages that trigger usage notifications",
        )

        # Tax
        extended_tax_enabled: bool = Field(
            False, description="Route US invoices to the external tax service"
        )
        tax_service_url: str = Field(
            "https://tax.example.com/v1/calculate", description="External tax service endpoint"
        )
        tax_service_api_key: str = Field("", description="External tax service API key")
        tax_service_timeout: float = Field(10.0, description="External tax request timeout")
        default_vat_rate: str = Field("20.0", description="VAT percentage for unlisted EU members")

        @field_validator("usage_quota_thresholds")
        @classmethod
        def validate_thresholds(cls, v: list[int]) -> list[int]:
            if any(t <= 0 for t in v):
                raise ValueError("Quota thresholds must be positive percentages")
            return sorted(v)

    billing: BillingSettings = BillingSettings()  # type: ignore[call-arg]

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.lower()
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == Environment.DEVELOPMENT


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get global settings instance (singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings()  # type: ignore
    return _settings


# Convenience export
settings = get_settings()
