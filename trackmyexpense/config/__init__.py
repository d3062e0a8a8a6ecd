"""Configuration package."""

from trackmyexpense.config.settings import (
    AppSettings,
    RetrySettings,
    Settings,
    StoreSettings,
    get_settings,
)

__all__ = [
    "AppSettings",
    "RetrySettings",
    "Settings",
    "StoreSettings",
    "get_settings",
]
