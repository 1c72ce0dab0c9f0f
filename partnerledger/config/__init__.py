"""Configuration package."""

from partnerledger.config.settings import (
    GoogleSheetsSettings,
    LedgerSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "GoogleSheetsSettings",
    "LedgerSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
