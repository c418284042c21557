"""Configuration module for mediashelf."""

from .settings import (
    CacheSettings,
    DatabaseSettings,
    ObservabilitySettings,
    ScannerSettings,
    Settings,
    StorageSettings,
    get_settings,
)

__all__ = [
    "CacheSettings",
    "DatabaseSettings",
    "ObservabilitySettings",
    "ScannerSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
]
