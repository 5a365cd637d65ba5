"""External integration client implementations."""

from tunebridge.infrastructure.integrations.spotify_client import SpotifyClient
from tunebridge.infrastructure.integrations.youtube_client import YouTubeClient

__all__ = [
    "SpotifyClient",
    "YouTubeClient",
]
