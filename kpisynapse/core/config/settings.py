# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for KPISynapse.
Settings are loaded from environment variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A cached instance is provided via get_settings() for dependency injection.

Example:
    >>> from kpisynapse.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.scheduler.timezone)
    'Asia/Kolkata'
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database configuration for KPI records and activity data.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        url_override: Full async connection URL, used instead of the components when set.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "kpisynapse"
    password: SecretStr = SecretStr("kpisynapse_password")
    host: str = "kpisynapse-db"
    port: int = 5432
    database: str = "kpisynapse"
    url_override: str | None = None
    pool_size: int = 10
    max_overflow: int = 20

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        if self.url_override:
            return self.url_override
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"

    @property
    def is_sqlite(self) -> bool:
        """Check whether the configured URL targets SQLite."""
        return self.url.startswith("sqlite")


class RedisSettings(BaseSettings):
    """Redis configuration for the Dramatiq broker.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password.
        database: Redis database number.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = "kpisynapse-redis"
    port: int = 6379
    password: SecretStr = SecretStr("kpisynapse_redis_password")
    database: int = 0

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        pwd = self.password.get_secret_value()
        return f"redis://:{pwd}@{self.host}:{self.port}/{self.database}"


class SMTPSettings(BaseSettings):
    """SMTP configuration for KPI email dispatch.

    Email sending is disabled unless host, username, password and
    from_email are all set.

    Attributes:
        host: SMTP server hostname.
        port: SMTP server port.
        username: SMTP authentication username.
        password: SMTP authentication password.
        use_tls: Use STARTTLS.
        from_email: Sender email address.
        from_name: Sender display name.
    """

    model_config = SettingsConfigDict(
        env_prefix="SMTP_",
        extra="ignore",
    )

    host: str | None = None
    port: int = 587
    username: str | None = None
    password: SecretStr | None = None
    use_tls: bool = True
    from_email: str | None = None
    from_name: str = "KPISynapse"

    @property
    def is_configured(self) -> bool:
        """Check if all required SMTP values are present."""
        return all([self.host, self.username, self.password, self.from_email])


class SchedulerSettings(BaseSettings):
    """KPI scheduler cadences.

    Attributes:
        enabled: Register cadences on startup.
        timezone: Timezone used to evaluate cron expressions.
        daily_cron: Cron expression for the daily full re-evaluation.
        realtime_interval_minutes: Interval of the near-real-time scan.
        monthly_cron: Cron expression for the monthly close-of-period run.
        max_concurrency: Users processed in parallel within one batch.
    """

    model_config = SettingsConfigDict(
        env_prefix="KPI_SCHEDULER_",
        extra="ignore",
    )

    enabled: bool = True
    timezone: str = "Asia/Kolkata"
    daily_cron: str = "0 2 * * *"
    realtime_interval_minutes: int = Field(default=30, ge=1)
    monthly_cron: str = "0 3 1 * *"
    max_concurrency: int = Field(default=5, ge=1)

    @field_validator("daily_cron", "monthly_cron")
    @classmethod
    def validate_cron(cls, value: str) -> str:
        """Require five cron fields."""
        if len(value.split()) != 5:
            raise ValueError(f"Invalid cron expression: {value}")
        return value


class AutomationSettings(BaseSettings):
    """Trigger execution settings.

    Attributes:
        operation_timeout_seconds: Timeout for each external call.
        training_due_days_high: Due offset for high priority trainings.
        training_due_days_default: Due offset for other trainings.
        audit_due_days_high: Scheduling offset for high priority audits.
        audit_due_days_default: Scheduling offset for other audits.
        email_max_retries: Retry budget stored on each email log.
        summary_email_enabled: Send the score summary email.
        summary_email_roles: Roles receiving the score summary email.
        notification_sender: Sender recorded on notifications.
    """

    model_config = SettingsConfigDict(
        env_prefix="KPI_",
        extra="ignore",
    )

    operation_timeout_seconds: float = Field(default=30.0, gt=0)
    training_due_days_high: int = 7
    training_due_days_default: int = 14
    audit_due_days_high: int = 3
    audit_due_days_default: int = 7
    email_max_retries: int = Field(default=3, ge=0)
    summary_email_enabled: bool = True
    summary_email_roles: list[str] = Field(
        default_factory=lambda: ["subject", "coordinator", "manager"]
    )
    notification_sender: str = "kpi_automation"


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        database: Database settings.
        redis: Redis settings.
        smtp: SMTP settings.
        scheduler: KPI scheduler settings.
        automation: Trigger execution settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    # Subsettings - loaded with their own env prefixes
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    smtp: SMTPSettings = Field(default_factory=SMTPSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    automation: AutomationSettings = Field(default_factory=AutomationSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production against SQLite.
        """
        if self.environment == "production" and self.database.is_sqlite:
            raise ValueError(
                "SQLite is not supported in production. "
                "Set DB_URL_OVERRIDE or the DB_* connection variables."
            )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
