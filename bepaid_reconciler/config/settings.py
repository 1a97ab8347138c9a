"""
Configuration Management for bePaid Reconciler

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Batch sizes, safety limits and matching switches live next to the
database credentials so a single .env file describes a deployment.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SupabaseSettings(BaseSettings):
    """Managed Postgres (Supabase) connection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Supabase project URL"
    )
    service_role_key: str = Field(
        ...,
        description="Service role key (bypasses row level security)"
    )
    in_chunk_size: int = Field(
        default=200,
        ge=1,
        le=1000,
        description="Maximum values per IN (...) filter"
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Project URLs must be absolute."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Supabase URL must start with http(s)://, got: {v}")
        return v.rstrip("/")


class ImportSettings(BaseSettings):
    """File import behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="IMPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    batch_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Records processed per import batch"
    )
    auto_create_orders: bool = Field(
        default=True,
        description="Create orders for matched records with an auto-create mapping"
    )
    create_ghost_profiles: bool = Field(
        default=False,
        description="Create placeholder profiles for unmatched card holders"
    )
    fuzzy_name_matching: bool = Field(
        default=True,
        description="Fall back to fuzzy transliterated name matching"
    )
    amount_tolerance: float = Field(
        default=0.01,
        ge=0.0,
        description="Amount difference that still counts as equal"
    )
    default_currency: str = Field(
        default="BYN",
        min_length=3,
        max_length=3,
        description="Currency assumed when the export has none"
    )
    future_date_tolerance_days: int = Field(
        default=1,
        ge=0,
        description="How many days in the future a payment date can be"
    )


class AutolinkSettings(BaseSettings):
    """Card autolink safety limits."""

    model_config = SettingsConfigDict(
        env_prefix="AUTOLINK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    limit: int = Field(
        default=200,
        ge=1,
        description="Maximum candidates before the run stops"
    )
    batch_size: int = Field(
        default=50,
        ge=1,
        le=1000,
    )


class PurgeSettings(BaseSettings):
    """Soft-cancel of stale file imports."""

    model_config = SettingsConfigDict(
        env_prefix="PURGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    limit: int = Field(
        default=5000,
        ge=1,
    )
    batch_size: int = Field(
        default=500,
        ge=1,
        le=5000,
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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )
    max_upload_size_mb: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Maximum export file size in MB"
    )

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


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

    # Sub-settings are loaded lazily so the file-only flows
    # work without database credentials.

    @property
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

    @property
    def imports(self) -> ImportSettings:
        return ImportSettings()

    @property
    def autolink(self) -> AutolinkSettings:
        return AutolinkSettings()

    @property
    def purge(self) -> PurgeSettings:
        return PurgeSettings()

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


def validate_all_settings() -> dict[str, Optional[bool | str]]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus
    {setting_name_error: message} for each failing group.
    """
    results: dict[str, Optional[bool | str]] = {}

    settings = get_settings()

    for name in ("supabase", "imports", "autolink", "purge", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
