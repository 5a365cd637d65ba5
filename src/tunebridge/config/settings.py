"""Application settings loaded from environment variables and .env files.

Hey future me - every section here is a plain pydantic model nested inside
Settings. Environment variables use "__" as the nesting delimiter, so
SPOTIFY__CLIENT_ID fills settings.spotify.client_id and
DATABASE__URL fills settings.database.url.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SpotifySettings(BaseModel):
    """Spotify OAuth application credentials."""

    client_id: str = ""
    client_secret: str = ""

    def is_configured(self) -> bool:
        """True when at least the client id is set."""
        return bool(self.client_id.strip())


class YouTubeSettings(BaseModel):
    """Google OAuth application credentials used for YouTube Data API calls."""

    client_id: str = ""
    client_secret: str = ""

    def is_configured(self) -> bool:
        """True when both Google credentials are set (Google needs the secret)."""
        return bool(self.client_id.strip() and self.client_secret.strip())


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = "sqlite+aiosqlite:///./tunebridge.db"
    echo: bool = False
    pool_pre_ping: bool = True
    # Only used for PostgreSQL, SQLite ignores pool sizing
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600


class ConversionSettings(BaseModel):
    """Tuning knobs for the playlist conversion pipeline."""

    default_visibility: Literal["private", "public", "unlisted"] = "private"
    # Tokens within this many seconds of expiry are refreshed before use
    token_expiry_buffer_seconds: int = Field(default=300, ge=0)
    # Provider tokens last ~60 minutes, the in-memory cache keeps them for 55
    token_cache_ttl_seconds: int = Field(default=3300, gt=0)
    skip_duplicate_items: bool = False
    # YouTube category 10 is "Music"
    search_category_id: str = "10"


class ObservabilitySettings(BaseModel):
    """Logging output settings."""

    log_json_format: bool = False


class Settings(BaseSettings):
    """Root application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = "tunebridge"
    app_env: Literal["development", "production", "test"] = "development"
    log_level: str = "INFO"

    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    youtube: YouTubeSettings = Field(default_factory=YouTubeSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    conversion: ConversionSettings = Field(default_factory=ConversionSettings)
    observability: ObservabilitySettings = Field(
        default_factory=ObservabilitySettings
    )

    # Hey future me - returns None for anything that isn't a file-backed SQLite URL
    # (PostgreSQL, or sqlite :memory:). Lifecycle uses this to create the parent dir.
    def _get_sqlite_db_path(self) -> Path | None:
        """Extract the SQLite database file path from the database URL."""
        url = self.database.url
        if not url.startswith("sqlite"):
            return None
        _, _, path = url.partition(":///")
        if not path or path == ":memory:":
            return None
        return Path(path)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
