"""Write YouTube playlists and list the ones a channel already has."""

import logging
from typing import Any

from tunebridge.application.services.token_manager import TokenManager
from tunebridge.domain.entities import Platform, PlaylistInfo, PlaylistVisibility
from tunebridge.domain.exceptions import ExternalServiceError
from tunebridge.domain.ports import IPlaylistWriter
from tunebridge.infrastructure.integrations.youtube_client import YouTubeClient

logger = logging.getLogger(__name__)

PLAYLISTS_PAGE_SIZE = 50


class YouTubePlaylistWriter(IPlaylistWriter):
    """Writes playlists through the YouTube Data API."""

    def __init__(self, client: YouTubeClient, token_manager: TokenManager) -> None:
        self._client = client
        self._tokens = token_manager

    async def create_playlist(
        self,
        user_id: str,
        title: str,
        description: str,
        visibility: str = PlaylistVisibility.PRIVATE.value,
    ) -> str:
        """Create an empty playlist and return its id."""
        privacy = PlaylistVisibility(visibility).value
        playlist = await self._tokens.run_with_token(
            user_id,
            Platform.YOUTUBE,
            lambda token: self._client.create_playlist(token, title, description, privacy),
        )
        playlist_id = playlist.get("id")
        if not playlist_id:
            raise ExternalServiceError(
                "YouTube did not return an id for the created playlist", service="YouTube"
            )
        logger.info("Created YouTube playlist %s (%s, %s)", playlist_id, title, privacy)
        return str(playlist_id)

    # Not idempotent: YouTube happily adds the same video twice. The conversion use case
    # decides whether duplicates get skipped.
    async def append_item(
        self,
        user_id: str,
        playlist_id: str,
        item_id: str,
        position: int | None = None,
    ) -> dict[str, Any]:
        return await self._tokens.run_with_token(
            user_id,
            Platform.YOUTUBE,
            lambda token: self._client.add_playlist_item(
                token, playlist_id, item_id, position=position
            ),
        )

    async def list_playlists(self, user_id: str) -> list[PlaylistInfo]:
        """All playlists of the connected YouTube channel (pages followed via nextPageToken)."""
        playlists: list[PlaylistInfo] = []
        page_token: str | None = None

        while True:
            page = await self._tokens.run_with_token(
                user_id,
                Platform.YOUTUBE,
                lambda token, page_token=page_token: self._client.list_playlists(
                    token, page_token=page_token, max_results=PLAYLISTS_PAGE_SIZE
                ),
            )
            items = page.get("items") or []
            playlists.extend(_playlist_info(item) for item in items if item.get("id"))

            page_token = page.get("nextPageToken")
            if not page_token or not items:
                break

        return playlists


def _playlist_info(data: dict[str, Any]) -> PlaylistInfo:
    snippet = data.get("snippet") or {}
    details = data.get("contentDetails") or {}
    return PlaylistInfo(
        id=data["id"],
        name=snippet.get("title") or "",
        description=snippet.get("description") or None,
        track_count=details.get("itemCount"),
        owner_name=snippet.get("channelTitle"),
    )
