"""Find the YouTube video for a Spotify track."""

import logging

from tunebridge.application.services.token_manager import TokenManager
from tunebridge.domain.entities import MatchResult, Platform, TrackDescriptor
from tunebridge.domain.ports import ITrackMatcher
from tunebridge.infrastructure.integrations.youtube_client import YouTubeClient

logger = logging.getLogger(__name__)


def build_search_query(descriptor: TrackDescriptor) -> str:
    """'<title> <primary artist> official' - the word 'official' favours label uploads."""
    parts = [descriptor.title, descriptor.primary_artist, "official"]
    return " ".join(part for part in parts if part)


# Hey future me, matching is DUMB: one search, top result, done. No fuzzy
# scoring, no duration check. YouTube's relevance ranking with the Music category filter is
# good enough, and each extra result costs quota. An empty result is a skip, not an error.
class YouTubeTrackMatcher(ITrackMatcher):
    """Resolves tracks to YouTube video ids via search.list."""

    def __init__(
        self,
        client: YouTubeClient,
        token_manager: TokenManager,
        category_id: str | None = "10",
    ) -> None:
        self._client = client
        self._tokens = token_manager
        self._category_id = category_id

    async def find_best_match(
        self, user_id: str, descriptor: TrackDescriptor
    ) -> MatchResult:
        query = build_search_query(descriptor)
        response = await self._tokens.run_with_token(
            user_id,
            Platform.YOUTUBE,
            lambda token: self._client.search_videos(
                token, query, max_results=1, category_id=self._category_id
            ),
        )

        for item in response.get("items") or []:
            video_id = (item.get("id") or {}).get("videoId")
            if video_id:
                title = (item.get("snippet") or {}).get("title")
                logger.debug("Matched '%s' → %s (%s)", query, video_id, title)
                return MatchResult(item_id=video_id, title=title)

        logger.debug("No YouTube match for '%s'", query)
        return MatchResult.no_match()
