"""Configuration package."""

from spendtracker.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    RecurringSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "RecurringSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
