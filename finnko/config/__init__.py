"""Configuration package."""

from finnko.config.settings import (
    AppSettings,
    LocalStoreSettings,
    Settings,
    SupabaseSettings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "LocalStoreSettings",
    "Settings",
    "SupabaseSettings",
    "SyncSettings",
    "get_settings",
    "validate_all_settings",
]
