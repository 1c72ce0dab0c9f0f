"""
Configuration Management for partnerledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Business rules (ledger currency, equity tolerance) and the storage
backend selection are read once and passed explicitly to the engine.
The engine itself never reaches for settings; only the service layer does.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Ledger-wide business settings."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    ledger_currency: str = Field(
        default="PKR",
        min_length=3,
        max_length=3,
        description="Currency all derived amounts are expressed in"
    )
    default_source_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency assumed for income entries that don't state one"
    )
    default_mode: Literal["company", "personal"] = Field(
        default="company",
        description="Mode used when no ledger configuration is persisted yet"
    )
    equity_epsilon: float = Field(
        default=0.0001,
        gt=0.0,
        le=0.01,
        description="Tolerance for the sum of active partner equity"
    )
    amount_tolerance: float = Field(
        default=1e-6,
        gt=0.0,
        description="Tolerance used when comparing derived monetary amounts"
    )

    @field_validator("ledger_currency", "default_source_currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        """Currency codes are stored upper-case."""
        return v.strip().upper()


class StorageSettings(BaseSettings):
    """Key-value store backend selection."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: Literal["memory", "json", "sheets"] = Field(
        default="json",
        description="Which key-value store implementation to use"
    )
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory for the JSON file store"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )
    collections_sheet_name: str = Field(
        default="LedgerCollections",
        description="Name of the worksheet holding one row per collection"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so a missing Google Sheets
    # configuration doesn't break local (json/memory) usage.

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("ledger", "storage", "google_sheets"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
