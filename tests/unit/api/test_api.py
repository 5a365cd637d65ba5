"""API tests through httpx.ASGITransport.

Hey future me - ASGITransport does NOT run the lifespan, so these tests wire
app.state by hand with in-memory fakes instead of SQLite and real clients.
"""

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta

import httpx
import pytest
from fakes import (
    FakeOAuthClient,
    FakePlaylistSource,
    FakePlaylistWriter,
    FakeTrackMatcher,
    InMemoryConversionRepository,
    InMemoryCredentialRepository,
    make_tracks,
)
from fastapi import FastAPI

from tunebridge.application.cache.token_cache import TokenCache
from tunebridge.application.services.conversion_service import ConversionService
from tunebridge.application.services.progress import ProgressBroadcaster
from tunebridge.application.services.token_manager import TokenManager
from tunebridge.application.use_cases.convert_playlist import ConvertPlaylistUseCase
from tunebridge.config import Settings
from tunebridge.domain.entities import Platform, PlaylistInfo, ServiceCredentials
from tunebridge.domain.exceptions import RateLimitExceededError, SourceNotFoundError
from tunebridge.main import create_app

USER = {"X-User-Id": "user-1"}
OTHER_USER = {"X-User-Id": "user-2"}


class FakeSpotifySource(FakePlaylistSource):
    def __init__(self) -> None:
        super().__init__(make_tracks(2))
        self.playlists_error: Exception | None = None

    async def list_playlists(self, user_id: str) -> list[PlaylistInfo]:
        if self.playlists_error is not None:
            raise self.playlists_error
        return [self.info]


class FakeYouTubeWriter(FakePlaylistWriter):
    def __init__(self) -> None:
        super().__init__()
        self.playlists = [PlaylistInfo("PL-yt", "Already There", track_count=3)]

    async def list_playlists(self, user_id: str) -> list[PlaylistInfo]:
        return self.playlists


class FakeDatabase:
    def __init__(self, healthy: bool = True) -> None:
        self.healthy = healthy

    async def ping(self) -> bool:
        return self.healthy


@pytest.fixture
def source() -> FakeSpotifySource:
    return FakeSpotifySource()


@pytest.fixture
def service(
    conversion_repository: InMemoryConversionRepository, source: FakeSpotifySource
) -> ConversionService:
    broadcaster = ProgressBroadcaster()
    use_case = ConvertPlaylistUseCase(
        conversion_repository,
        source,
        FakeTrackMatcher({"t1": "v1", "t2": "v2"}),
        FakePlaylistWriter(),
        progress_observer=broadcaster,
    )
    return ConversionService(conversion_repository, use_case, broadcaster)


@pytest.fixture
def app(
    settings: Settings,
    service: ConversionService,
    source: FakeSpotifySource,
    credential_repository: InMemoryCredentialRepository,
) -> FastAPI:
    app = create_app(settings)
    app.state.conversion_service = service
    app.state.spotify_source = source
    app.state.youtube_writer = FakeYouTubeWriter()
    app.state.token_manager = TokenManager(
        credential_repository,
        TokenCache(),
        oauth_clients={Platform.SPOTIFY: FakeOAuthClient()},
    )
    app.state.db = FakeDatabase()
    return app


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _convert(
    client: httpx.AsyncClient, service: ConversionService, **body: object
) -> dict:
    response = await client.post(
        "/api/conversions", json={"playlist_id": "pl-1", **body}, headers=USER
    )
    assert response.status_code == 202
    data = response.json()
    await service.wait_for(data["id"])
    return data


class TestHealth:
    async def test_healthy(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["checks"] == {"database": True}

    async def test_degraded(self, app: FastAPI, client: httpx.AsyncClient) -> None:
        app.state.db = FakeDatabase(healthy=False)
        response = await client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "degraded"


class TestConversionsApi:
    async def test_requires_user_header(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/conversions")
        assert response.status_code == 401

    async def test_start_returns_processing_record(
        self, client: httpx.AsyncClient, service: ConversionService
    ) -> None:
        response = await client.post(
            "/api/conversions", json={"playlist_id": "pl-1"}, headers=USER
        )

        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "processing"
        assert data["progress"] == 0.0
        assert data["source_type"] == "spotify"
        assert data["target_type"] == "youtube"
        assert response.headers["X-Correlation-ID"]
        await service.wait_for(data["id"])

    async def test_completed_record(
        self, client: httpx.AsyncClient, service: ConversionService
    ) -> None:
        started = await _convert(client, service)

        response = await client.get(f"/api/conversions/{started['id']}", headers=USER)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["progress"] == 100.0
        assert data["transferred_count"] == 2
        assert data["target_playlist_id"] == "yt-pl-1"

    async def test_failed_record_carries_error(
        self, client: httpx.AsyncClient, service: ConversionService
    ) -> None:
        response = await client.post(
            "/api/conversions", json={"playlist_id": "missing"}, headers=USER
        )
        conversion_id = response.json()["id"]
        await service.wait_for(conversion_id)

        data = (await client.get(f"/api/conversions/{conversion_id}", headers=USER)).json()

        assert data["status"] == "failed"
        assert data["error"] == "Source playlist missing not found"
        assert data["target_playlist_id"] is None

    async def test_empty_playlist_id_is_422(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/conversions", json={"playlist_id": ""}, headers=USER
        )
        assert response.status_code == 422

    async def test_history_is_user_scoped(
        self, client: httpx.AsyncClient, service: ConversionService
    ) -> None:
        started = await _convert(client, service)

        mine = (await client.get("/api/conversions", headers=USER)).json()
        theirs = (await client.get("/api/conversions", headers=OTHER_USER)).json()

        assert mine["total"] == 1
        assert mine["items"][0]["id"] == started["id"]
        assert theirs == {"items": [], "total": 0}

        foreign = await client.get(f"/api/conversions/{started['id']}", headers=OTHER_USER)
        assert foreign.status_code == 404

    async def test_delete(
        self, client: httpx.AsyncClient, service: ConversionService
    ) -> None:
        started = await _convert(client, service)

        response = await client.delete(f"/api/conversions/{started['id']}", headers=USER)
        assert response.status_code == 204

        missing = await client.get(f"/api/conversions/{started['id']}", headers=USER)
        assert missing.status_code == 404

    async def test_finished_event_stream(
        self, client: httpx.AsyncClient, service: ConversionService
    ) -> None:
        started = await _convert(client, service)

        response = await client.get(
            f"/api/conversions/{started['id']}/events", headers=USER
        )

        assert response.status_code == 200
        assert "event: finished" in response.text
        assert '"status":"completed"' in response.text

    async def test_event_stream_of_foreign_conversion(
        self, client: httpx.AsyncClient, service: ConversionService
    ) -> None:
        started = await _convert(client, service)

        response = await client.get(
            f"/api/conversions/{started['id']}/events", headers=OTHER_USER
        )

        assert response.status_code == 404


class TestConnectionsApi:
    async def test_connect_then_status(self, client: httpx.AsyncClient) -> None:
        response = await client.put(
            "/api/connections/youtube",
            json={"access_token": "ya29", "refresh_token": "1//r", "expires_in": 3600},
            headers=USER,
        )

        assert response.status_code == 200
        assert response.json() == {"connections": {"spotify": False, "youtube": True}}

    async def test_unknown_platform(self, client: httpx.AsyncClient) -> None:
        response = await client.put(
            "/api/connections/deezer", json={"access_token": "x"}, headers=USER
        )
        assert response.status_code == 422

    async def test_disconnect(
        self,
        client: httpx.AsyncClient,
        credential_repository: InMemoryCredentialRepository,
    ) -> None:
        credential_repository.rows[("user-1", Platform.SPOTIFY)] = ServiceCredentials(
            user_id="user-1",
            platform=Platform.SPOTIFY,
            access_token="tok",
            expires_at=datetime.now(UTC) + timedelta(hours=1),
        )

        response = await client.delete("/api/connections/spotify", headers=USER)

        assert response.status_code == 204
        status = (await client.get("/api/connections", headers=USER)).json()
        assert status["connections"]["spotify"] is False


class TestSpotifyApi:
    async def test_list_playlists(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/spotify/playlists", headers=USER)

        assert response.status_code == 200
        assert response.json()[0]["name"] == "Road Trip"

    async def test_rate_limit_maps_to_429(
        self, client: httpx.AsyncClient, source: FakeSpotifySource
    ) -> None:
        source.playlists_error = RateLimitExceededError(
            "Spotify API rate limited", retry_after=30, service="Spotify"
        )

        response = await client.get("/api/spotify/playlists", headers=USER)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "30"


class TestPlaylistBrowsingApi:
    async def test_spotify_playlist_tracks(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/spotify/playlists/pl-1/tracks", headers=USER)

        assert response.status_code == 200
        assert response.json() == [
            {"id": "t1", "title": "Song 1", "artists": ["Artist 1"], "duration_ms": None},
            {"id": "t2", "title": "Song 2", "artists": ["Artist 2"], "duration_ms": None},
        ]

    async def test_spotify_playlist_tracks_missing_playlist(
        self, client: httpx.AsyncClient, source: FakeSpotifySource
    ) -> None:
        source.tracks_error = SourceNotFoundError("nope")

        response = await client.get("/api/spotify/playlists/nope/tracks", headers=USER)

        assert response.status_code == 404

    async def test_youtube_playlists(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/youtube/playlists", headers=USER)

        assert response.status_code == 200
        data = response.json()
        assert [p["id"] for p in data] == ["PL-yt"]
        assert data[0]["track_count"] == 3

    async def test_youtube_playlists_requires_user(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/youtube/playlists")
        assert response.status_code == 401


class TestServiceNotReady:
    async def test_missing_state_is_503(self, settings: Settings) -> None:
        app = create_app(settings)
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/conversions", headers=USER)
        assert response.status_code == 503
