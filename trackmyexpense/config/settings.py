"""
Configuration Management for TrackMyExpense

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here and built once at
process start. Components never read settings on their own; the factory
in orchestrator.py hands each one the settings (or store) it needs.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Keyed store backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        extra="ignore"
    )

    backend: Literal["memory", "sql"] = Field(
        default="memory",
        description="Which keyed store implementation to use"
    )
    database_url: str = Field(
        default="sqlite:///data/trackmyexpense.db",
        description="SQLAlchemy URL for the sql backend"
    )
    echo_sql: bool = Field(
        default=False,
        description="Log every SQL statement (debugging only)"
    )


class RetrySettings(BaseSettings):
    """
    Backoff for retryable store failures.

    Only AtomicWriteConflict and ThroughputExceeded are retried; both
    guarantee that nothing was applied.
    """

    model_config = SettingsConfigDict(
        env_prefix="RETRY_",
        extra="ignore"
    )

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Total attempts including the first"
    )
    wait_multiplier: float = Field(default=0.1, ge=0.0)
    wait_min: float = Field(default=0.1, ge=0.0, description="Seconds")
    wait_max: float = Field(default=2.0, ge=0.0, description="Seconds")

    @model_validator(mode='after')
    def validate_window(self) -> 'RetrySettings':
        if self.wait_max < self.wait_min:
            raise ValueError("wait_max cannot be below wait_min")
        return self


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_logs: bool = Field(
        default=True,
        description="Render logs as JSON (False: human-readable console)"
    )

    default_currency: str = Field(
        default="INR",
        pattern=r"^[A-Z]{3}$",
        description="Currency for accounts created without one"
    )
    default_page_limit: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Transactions per page when the caller gives no limit"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings so a single object can be built at
    startup and passed down.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app: AppSettings = Field(default_factory=AppSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Meant for process bootstrap only. Call get_settings.cache_clear()
    to reload.
    """
    return Settings()
