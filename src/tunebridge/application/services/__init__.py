"""Application services."""

from tunebridge.application.services.conversion_service import ConversionService
from tunebridge.application.services.playlist_writer import YouTubePlaylistWriter
from tunebridge.application.services.progress import (
    CallbackProgressObserver,
    ProgressBroadcaster,
    ProgressChannel,
)
from tunebridge.application.services.token_manager import TokenManager
from tunebridge.application.services.track_matcher import YouTubeTrackMatcher

__all__ = [
    "CallbackProgressObserver",
    "ConversionService",
    "ProgressBroadcaster",
    "ProgressChannel",
    "TokenManager",
    "YouTubePlaylistWriter",
    "YouTubeTrackMatcher",
]
