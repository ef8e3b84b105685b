"""
Configuration Management for budgetkeep

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Stores never read the environment themselves - they receive backends,
TTLs and paths from whoever constructs them (see orchestrator.py).
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LocalStorageSettings(BaseSettings):
    """Device-local key/value storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BUDGETKEEP_LOCAL_",
        extra="ignore"
    )

    storage_dir: Path = Field(
        default=Path.home() / ".budgetkeep" / "storage",
        description="Directory holding one file per storage key"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets remote record store configuration."""

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

    # One worksheet per remote table
    tutorial_table: str = Field(
        default="user_tutorial_status",
        description="Name of the sheet holding tutorial status records"
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


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="BUDGETKEEP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Lifecycle timing
    quick_reopen_window_seconds: float = Field(
        default=30.0,
        gt=0,
        le=3600,
        description="How long a backgrounded app may resume on its last screen"
    )
    settings_save_debounce_seconds: float = Field(
        default=0.5,
        ge=0,
        le=10,
        description="Coalescing window for bursts of settings writes"
    )

    # Audit
    audit_history_size: int = Field(
        default=500,
        ge=0,
        description="How many audit events are kept in memory"
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

    # Loaded lazily so a missing remote configuration does not
    # prevent local-only use.

    @property
    def local_storage(self) -> LocalStorageSettings:
        return LocalStorageSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def remote_configured(settings: Optional[Settings] = None) -> bool:
    """Return True when the Google Sheets section loads without errors."""
    settings = settings or get_settings()
    try:
        _ = settings.google_sheets
    except Exception:
        return False
    return True
