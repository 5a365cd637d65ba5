"""YouTube browsing endpoints."""

from fastapi import APIRouter

from tunebridge.api.dependencies import CurrentUserId, YouTubeWriterDep
from tunebridge.api.schemas import PlaylistDTO

router = APIRouter(prefix="/youtube", tags=["youtube"])


@router.get("/playlists", response_model=list[PlaylistDTO])
async def list_playlists(
    user_id: CurrentUserId, writer: YouTubeWriterDep
) -> list[PlaylistDTO]:
    """Playlists already on the connected YouTube channel."""
    playlists = await writer.list_playlists(user_id)
    return [PlaylistDTO.from_entity(p) for p in playlists]
