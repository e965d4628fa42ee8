"""Application settings loaded from environment variables and ``.env``."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class SpotifySettings(BaseSettings):
    """Spotify Web API settings.

    Hey future me – max_parallel and min_delay_seconds are the ONLY thing standing between us
    and Spotify's undocumented rate limit (we never retry!). 3 parallel requests with 25ms
    between dispatches has been safe for libraries with thousands of liked songs. page_size 50
    is the maximum Spotify accepts for /me/tracks - don't raise it.
    """

    model_config = SettingsConfigDict(env_prefix="SPOTIFY_", extra="ignore")

    api_base_url: str = "https://api.spotify.com/v1"
    request_timeout: float = 30.0
    max_parallel: int = 3
    min_delay_seconds: float = 0.025
    page_size: int = 50
    top_artists_limit: int = 50
    top_artists_time_range: str = "medium_term"
    followed_artists_limit: int = 50

    @field_validator("max_parallel", "page_size", "top_artists_limit", "followed_artists_limit")
    @classmethod
    def _must_be_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("min_delay_seconds", "request_timeout")
    @classmethod
    def _must_not_be_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class ObservabilitySettings(BaseSettings):
    """Logging output settings."""

    model_config = SettingsConfigDict(env_prefix="MUSICMATCH_", extra="ignore")

    log_json_format: bool = False


class Settings(BaseSettings):
    """Top-level settings.

    Nested groups read their own env prefixes (``SPOTIFY_*``, ``MUSICMATCH_*``).
    """

    model_config = SettingsConfigDict(
        env_prefix="MUSICMATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "musicmatch"
    log_level: str = "INFO"
    state_file: Path = Path.home() / ".config" / "musicmatch" / "state.json"

    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @field_validator("log_level")
    @classmethod
    def _valid_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()
