"""
Configuration Management for SpendTracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which storage backend is in use and how
recurring payments are processed, and validates both at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from spendtracker.models.ledger import CatchUpPolicy


STORAGE_BACKENDS = ("json", "memory", "google_sheets")


class StorageSettings(BaseSettings):
    """Where ledger collections are persisted."""

    model_config = SettingsConfigDict(
        env_prefix="SPENDTRACKER_STORAGE_",
        extra="ignore"
    )

    backend: str = Field(
        default="json",
        description="Storage backend: json, memory or google_sheets"
    )
    data_dir: Path = Field(
        default=Path("./data"),
        description="Directory for the JSON backend"
    )
    accounts_file: str = Field(default="accounts.json")
    recurring_file: str = Field(default="recurring_payments.json")
    categories_file: str = Field(default="categories.json")
    audit_file: str = Field(
        default="audit.jsonl",
        description="Append-only audit log for the JSON backend"
    )

    @field_validator('backend')
    @classmethod
    def validate_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in STORAGE_BACKENDS:
            raise ValueError(
                f"Unsupported storage backend: {v}. Allowed: {', '.join(STORAGE_BACKENDS)}"
            )
        return v

    @property
    def accounts_path(self) -> Path:
        return self.data_dir / self.accounts_file

    @property
    def recurring_path(self) -> Path:
        return self.data_dir / self.recurring_file

    @property
    def categories_path(self) -> Path:
        return self.data_dir / self.categories_file

    @property
    def audit_path(self) -> Path:
        return self.data_dir / self.audit_file


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

    # Worksheet names within the spreadsheet
    accounts_sheet_name: str = Field(default="Accounts")
    recurring_sheet_name: str = Field(default="RecurringPayments")
    categories_sheet_name: str = Field(default="Categories")
    audit_sheet_name: str = Field(default="AuditLog")

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


class RecurringSettings(BaseSettings):
    """How due recurring payments are turned into transactions."""

    model_config = SettingsConfigDict(
        env_prefix="SPENDTRACKER_RECURRING_",
        extra="ignore"
    )

    catch_up_policy: CatchUpPolicy = Field(
        default=CatchUpPolicy.LATEST_ONLY,
        description="latest_only: one transaction per sweep; backfill: one per missed period"
    )
    max_backfill_periods: int = Field(
        default=366,
        ge=1,
        le=10000,
        description="Upper bound on transactions emitted for one payment in one sweep"
    )
    process_on_startup: bool = Field(
        default=True,
        description="Run the due-payment sweep when the app components are created"
    )


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

    log_level: str = Field(default="INFO")
    validate_on_load: bool = Field(
        default=True,
        description="Run the ledger integrity check after loading"
    )


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

    # Note: sub-settings are loaded lazily so Google Sheets credentials
    # are only required when that backend is selected.

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def recurring(self) -> RecurringSettings:
        return RecurringSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


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

    Returns a dict of {setting_name: is_valid}, plus "<name>_error"
    entries for the ones that failed.
    """
    results = {}
    settings = get_settings()

    sections = {
        "storage": lambda: settings.storage,
        "recurring": lambda: settings.recurring,
        "app": lambda: settings.app,
    }
    # Sheets credentials only matter when that backend is selected
    try:
        if settings.storage.backend == "google_sheets":
            sections["google_sheets"] = lambda: settings.google_sheets
    except ValueError:
        pass  # reported below under "storage"

    for name, load in sections.items():
        try:
            load()
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
