"""
Configuration Management for Finance Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every hosted collaborator (document store, blob store) is named by
configuration only, so pointing the app at another project is an
environment change, not a code change.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CloudinarySettings(BaseSettings):
    """Cloudinary blob store configuration (avatars)."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDINARY_",
        extra="ignore"
    )

    cloud_name: str = Field(
        ...,
        description="Cloudinary cloud name"
    )
    api_key: str = Field(
        ...,
        description="Cloudinary API key"
    )
    api_secret: str = Field(
        ...,
        description="Cloudinary API secret"
    )
    avatars_bucket: str = Field(
        default="avatars",
        description="Folder used as the avatar bucket"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets document store configuration."""

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
        description="ID of the spreadsheet acting as the database"
    )

    # One worksheet per collection
    profiles_sheet_name: str = Field(default="Profiles")
    transactions_sheet_name: str = Field(default="Transactions")
    goals_sheet_name: str = Field(default="Goals")
    budgets_sheet_name: str = Field(default="Budgets")
    accounts_sheet_name: str = Field(default="Accounts")
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
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

    def sheet_name_for(self, collection: str) -> str:
        """Resolve the worksheet holding a collection."""
        names = {
            "profiles": self.profiles_sheet_name,
            "transactions": self.transactions_sheet_name,
            "goals": self.goals_sheet_name,
            "budgets": self.budgets_sheet_name,
            "accounts": self.accounts_sheet_name,
        }
        return names.get(collection, collection)


class SessionSettings(BaseSettings):
    """Inactivity session timeout configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SESSION_",
        extra="ignore"
    )

    timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Inactivity window before forced logout"
    )
    warning_seconds: float = Field(
        default=60.0,
        ge=0,
        description="How long before logout the warning fires"
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

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Budgets
    default_alert_threshold: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Alert threshold (percent) for auto-created budgets"
    )

    # Payments
    due_soon_days: int = Field(
        default=7,
        ge=0,
        description="Window (days, inclusive) for a payment to count as due soon"
    )

    # Listing
    default_page_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Transactions per page"
    )

    # Avatar upload limits
    max_avatar_size_mb: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum avatar upload size in MB"
    )
    supported_avatar_formats: str = Field(
        default="jpeg,png,webp,gif",
        description="Comma-separated list of accepted avatar formats"
    )

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_avatar_formats.split(",")]

    @property
    def max_avatar_size_bytes(self) -> int:
        """Get max avatar size in bytes."""
        return self.max_avatar_size_mb * 1024 * 1024


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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def cloudinary(self) -> CloudinarySettings:
        return CloudinarySettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def session(self) -> SessionSettings:
        return SessionSettings()

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


def validate_all_settings() -> dict:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus {setting_name}_error
    messages for sections that failed to load.
    Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("cloudinary", "google_sheets", "session", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
