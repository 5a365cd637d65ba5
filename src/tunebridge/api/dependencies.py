"""Dependency injection for API endpoints."""

from typing import Annotated, cast

from fastapi import Depends, Header, HTTPException, Request

from tunebridge.application.services.conversion_service import ConversionService
from tunebridge.application.services.playlist_writer import YouTubePlaylistWriter
from tunebridge.application.services.token_manager import TokenManager
from tunebridge.application.sources.spotify_source import SpotifyPlaylistSource
from tunebridge.config import Settings, get_settings
from tunebridge.infrastructure.persistence.database import Database


# Hey future me, everything here comes from app.state, wired ONCE by the lifespan (see
# infrastructure/lifecycle.py). Missing attribute = startup didn't finish → 503, not 500.
def _from_state(request: Request, name: str) -> object:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return value


def get_conversion_service(request: Request) -> ConversionService:
    return cast(ConversionService, _from_state(request, "conversion_service"))


def get_token_manager(request: Request) -> TokenManager:
    return cast(TokenManager, _from_state(request, "token_manager"))


def get_spotify_source(request: Request) -> SpotifyPlaylistSource:
    return cast(SpotifyPlaylistSource, _from_state(request, "spotify_source"))


def get_youtube_writer(request: Request) -> YouTubePlaylistWriter:
    return cast(YouTubePlaylistWriter, _from_state(request, "youtube_writer"))


def get_database(request: Request) -> Database | None:
    return getattr(request.app.state, "db", None)


def get_app_settings(request: Request) -> Settings:
    """Settings the app was created with (falls back to the cached env settings)."""
    settings = getattr(request.app.state, "settings", None)
    return cast(Settings, settings) if settings is not None else get_settings()


# Identity comes from the fronting auth layer, we only trust the header it sets
def get_current_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> str:
    """The caller's user id from the X-User-Id header."""
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


CurrentUserId = Annotated[str, Depends(get_current_user_id)]
ConversionServiceDep = Annotated[ConversionService, Depends(get_conversion_service)]
TokenManagerDep = Annotated[TokenManager, Depends(get_token_manager)]
SpotifySourceDep = Annotated[SpotifyPlaylistSource, Depends(get_spotify_source)]
YouTubeWriterDep = Annotated[YouTubePlaylistWriter, Depends(get_youtube_writer)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
