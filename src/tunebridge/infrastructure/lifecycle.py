"""Application lifecycle management for startup and shutdown tasks."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tunebridge.application.cache.token_cache import TokenCache
from tunebridge.application.services.conversion_service import ConversionService
from tunebridge.application.services.playlist_writer import YouTubePlaylistWriter
from tunebridge.application.services.progress import ProgressBroadcaster
from tunebridge.application.services.token_manager import TokenManager
from tunebridge.application.services.track_matcher import YouTubeTrackMatcher
from tunebridge.application.sources.spotify_source import SpotifyPlaylistSource
from tunebridge.application.use_cases.convert_playlist import ConvertPlaylistUseCase
from tunebridge.config import Settings, get_settings
from tunebridge.domain.entities import Platform
from tunebridge.domain.exceptions import ConfigurationError
from tunebridge.infrastructure.integrations import SpotifyClient, YouTubeClient
from tunebridge.infrastructure.observability import configure_logging
from tunebridge.infrastructure.persistence import (
    ConversionRepository,
    Database,
    ServiceTokenRepository,
)

logger = logging.getLogger(__name__)


# Hey future me, SQLite won't create missing parent directories and fails with a cryptic
# "unable to open database file". Check the directory is there and writable BEFORE creating
# the engine so startup fails with a readable ConfigurationError instead.
def _validate_sqlite_path(settings: Settings) -> None:
    """Ensure the SQLite database directory exists and is writable."""
    db_path = settings._get_sqlite_db_path()
    if db_path is None:
        return

    try:
        if str(db_path.parent) != ".":
            db_path.parent.mkdir(parents=True, exist_ok=True)
        test_file = db_path.parent / f".{db_path.stem}_write_test"
        test_file.write_bytes(b"test")
        test_file.unlink()
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to write SQLite files in '{db_path.parent}': {exc}. "
            "Update DATABASE__URL or adjust directory permissions."
        ) from exc


def wire_services(app: FastAPI, settings: Settings, db: Database) -> None:
    """Build the object graph and attach it to app.state.

    One TokenCache, one broadcaster and one client per platform for the whole
    process, everything else is stateless and shares them.
    """
    credentials = ServiceTokenRepository(db.session_scope)
    conversions = ConversionRepository(db.session_scope)

    spotify_client = SpotifyClient(settings.spotify)
    youtube_client = YouTubeClient(settings.youtube)

    token_manager = TokenManager(
        credential_repository=credentials,
        token_cache=TokenCache(),
        oauth_clients={
            Platform.SPOTIFY: spotify_client,
            Platform.YOUTUBE: youtube_client,
        },
        expiry_buffer_seconds=settings.conversion.token_expiry_buffer_seconds,
        cache_ttl_seconds=settings.conversion.token_cache_ttl_seconds,
    )
    source = SpotifyPlaylistSource(spotify_client, token_manager)
    writer = YouTubePlaylistWriter(youtube_client, token_manager)
    broadcaster = ProgressBroadcaster()
    use_case = ConvertPlaylistUseCase(
        conversion_repository=conversions,
        playlist_source=source,
        track_matcher=YouTubeTrackMatcher(
            youtube_client,
            token_manager,
            category_id=settings.conversion.search_category_id or None,
        ),
        playlist_writer=writer,
        progress_observer=broadcaster,
        skip_duplicate_items=settings.conversion.skip_duplicate_items,
    )

    app.state.db = db
    app.state.spotify_client = spotify_client
    app.state.youtube_client = youtube_client
    app.state.token_manager = token_manager
    app.state.spotify_source = source
    app.state.youtube_writer = writer
    app.state.conversion_service = ConversionService(conversions, use_case, broadcaster)


# Everything before `yield` runs at STARTUP, everything after at SHUTDOWN. The finally block
# makes sure running conversions are cancelled and connections closed even if startup failed
# halfway.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = getattr(app.state, "settings", None) or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s (%s)", settings.app_name, settings.app_env)

    if not settings.spotify.is_configured():
        logger.warning("SPOTIFY__CLIENT_ID not set - Spotify token refresh will fail")
    if not settings.youtube.is_configured():
        logger.warning(
            "YOUTUBE__CLIENT_ID/SECRET not set - YouTube token refresh will fail"
        )

    db: Database | None = None
    try:
        _validate_sqlite_path(settings)
        db = Database(settings)
        await db.create_tables()
        logger.info("Database initialized: %s", settings.database.url)

        wire_services(app, settings, db)
        yield
    except Exception as e:
        logger.exception("Error during application startup: %s", e)
        raise
    finally:
        logger.info("Shutting down application")

        service = getattr(app.state, "conversion_service", None)
        if service is not None:
            try:
                await service.shutdown()
            except Exception as e:
                logger.exception("Error stopping conversions: %s", e)

        for name in ("spotify_client", "youtube_client"):
            client = getattr(app.state, name, None)
            if client is not None:
                try:
                    await client.close()
                except Exception as e:
                    logger.exception("Error closing %s: %s", name, e)

        if db is not None:
            try:
                await db.close()
                logger.info("Database connection closed")
            except Exception as e:
                logger.exception("Error closing database: %s", e)
