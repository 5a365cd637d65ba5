"""Spotify browsing endpoints (choose what to convert)."""

from fastapi import APIRouter

from tunebridge.api.dependencies import CurrentUserId, SpotifySourceDep
from tunebridge.api.schemas import PlaylistDTO, TrackDTO

router = APIRouter(prefix="/spotify", tags=["spotify"])


@router.get("/playlists", response_model=list[PlaylistDTO])
async def list_playlists(
    user_id: CurrentUserId, source: SpotifySourceDep
) -> list[PlaylistDTO]:
    """All playlists of the connected Spotify account."""
    playlists = await source.list_playlists(user_id)
    return [PlaylistDTO.from_entity(p) for p in playlists]


@router.get("/playlists/{playlist_id}/tracks", response_model=list[TrackDTO])
async def list_playlist_tracks(
    playlist_id: str, user_id: CurrentUserId, source: SpotifySourceDep
) -> list[TrackDTO]:
    """Convertible tracks of one playlist, in playlist order.

    Episodes and local files are left out, exactly as a conversion would skip them.
    """
    tracks = await source.list_tracks(user_id, playlist_id)
    return [TrackDTO.from_entity(t) for t in tracks]
