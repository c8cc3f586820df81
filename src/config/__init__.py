"""Configuration package."""

from src.config.settings import (
    AppSettings,
    FirebaseSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "FirebaseSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
