"""Configuration package."""

from bepaid_reconciler.config.settings import (
    AppSettings,
    AutolinkSettings,
    ImportSettings,
    PurgeSettings,
    Settings,
    SupabaseSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "AutolinkSettings",
    "ImportSettings",
    "PurgeSettings",
    "Settings",
    "SupabaseSettings",
    "get_settings",
    "validate_all_settings",
]
