"""Configuration module for TuneBridge."""

from .settings import (
    ConversionSettings,
    DatabaseSettings,
    ObservabilitySettings,
    Settings,
    SpotifySettings,
    YouTubeSettings,
    get_settings,
)

__all__ = [
    "ConversionSettings",
    "DatabaseSettings",
    "ObservabilitySettings",
    "Settings",
    "SpotifySettings",
    "YouTubeSettings",
    "get_settings",
]
