"""Configuration module for MusicMatch."""

from .settings import ObservabilitySettings, Settings, SpotifySettings, get_settings

__all__ = ["ObservabilitySettings", "Settings", "SpotifySettings", "get_settings"]
