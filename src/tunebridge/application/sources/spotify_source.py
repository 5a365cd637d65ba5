"""Spotify playlist source.

Hey future me - this turns Spotify's paginated playlist JSON into the flat
list of TrackDescriptors the conversion loop works on. Every page request
goes through TokenManager.run_with_token, so a token that dies halfway
through a 2000 track playlist gets refreshed once and the page retried.

Unlike the library import sources, errors here are NOT swallowed: a missing
playlist must fail the conversion (SourceNotFoundError), and a half-read
track list would silently produce a half-converted playlist.
"""

import logging
from collections.abc import Sequence
from typing import Any

from tunebridge.application.services.token_manager import TokenManager
from tunebridge.domain.entities import Platform, PlaylistInfo, TrackDescriptor
from tunebridge.domain.ports import IPlaylistSource
from tunebridge.infrastructure.integrations.spotify_client import SpotifyClient

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
PLAYLISTS_PAGE_SIZE = 50


class SpotifyPlaylistSource(IPlaylistSource):
    """Reads playlists and their tracks from Spotify."""

    def __init__(self, client: SpotifyClient, token_manager: TokenManager) -> None:
        self._client = client
        self._tokens = token_manager

    async def get_playlist_info(self, user_id: str, playlist_id: str) -> PlaylistInfo:
        """Get playlist metadata.

        Raises:
            SourceNotFoundError: If the playlist doesn't exist or isn't visible
        """
        data = await self._tokens.run_with_token(
            user_id,
            Platform.SPOTIFY,
            lambda token: self._client.get_playlist(playlist_id, token),
        )
        return _playlist_info(data)

    async def list_tracks(
        self,
        user_id: str,
        playlist_id: str,
        selected_ids: Sequence[str] | None = None,
    ) -> list[TrackDescriptor]:
        """Enumerate every track of the playlist in source order.

        Args:
            user_id: Owner of the Spotify connection
            playlist_id: Spotify playlist id
            selected_ids: Optional subset of track ids to keep. None or empty
                means all tracks. Order always follows the playlist, not this list

        Raises:
            SourceNotFoundError: If the playlist doesn't exist or isn't visible
        """
        tracks: list[TrackDescriptor] = []
        offset = 0

        while True:
            page = await self._tokens.run_with_token(
                user_id,
                Platform.SPOTIFY,
                lambda token, offset=offset: self._client.get_playlist_tracks(
                    playlist_id, token, limit=PAGE_SIZE, offset=offset
                ),
            )
            items = page.get("items") or []
            for item in items:
                descriptor = _track_descriptor(item)
                if descriptor is not None:
                    tracks.append(descriptor)

            if not page.get("next") or not items:
                break
            offset += len(items)

        logger.debug(
            "Enumerated %d tracks from Spotify playlist %s", len(tracks), playlist_id
        )

        if selected_ids:
            wanted = set(selected_ids)
            tracks = [track for track in tracks if track.id in wanted]
        return tracks

    async def list_playlists(self, user_id: str) -> list[PlaylistInfo]:
        """All playlists of the connected Spotify user."""
        playlists: list[PlaylistInfo] = []
        offset = 0

        while True:
            page = await self._tokens.run_with_token(
                user_id,
                Platform.SPOTIFY,
                lambda token, offset=offset: self._client.get_user_playlists(
                    token, limit=PLAYLISTS_PAGE_SIZE, offset=offset
                ),
            )
            items = page.get("items") or []
            playlists.extend(_playlist_info(item) for item in items if item)

            if not page.get("next") or not items:
                break
            offset += len(items)

        return playlists


# Playlist entries can be podcast episodes (type "episode"), removed tracks (track=None)
# or local files that have no Spotify id. None of those can be searched reliably.
def _track_descriptor(item: dict[str, Any]) -> TrackDescriptor | None:
    track = item.get("track")
    if not track:
        return None
    if track.get("type", "track") != "track" or item.get("is_local"):
        return None
    track_id = track.get("id")
    name = track.get("name")
    if not track_id or not name:
        return None
    artists = tuple(
        artist["name"] for artist in track.get("artists") or [] if artist.get("name")
    )
    return TrackDescriptor(
        id=track_id,
        title=name,
        artists=artists,
        duration_ms=track.get("duration_ms"),
    )


def _playlist_info(data: dict[str, Any]) -> PlaylistInfo:
    tracks = data.get("tracks") or {}
    owner = data.get("owner") or {}
    return PlaylistInfo(
        id=data["id"],
        name=data.get("name") or "",
        description=data.get("description") or None,
        track_count=tracks.get("total"),
        owner_name=owner.get("display_name"),
    )
