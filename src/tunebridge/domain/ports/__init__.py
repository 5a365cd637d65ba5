"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from tunebridge.domain.entities import (
    Conversion,
    ConversionProgress,
    MatchResult,
    Platform,
    PlaylistInfo,
    ServiceCredentials,
    TokenGrant,
    TrackDescriptor,
)


# Hey future me, IConversionRepository is a PORT! The use case and ConversionService only ever
# see this interface, the SQLAlchemy implementation lives in infrastructure/persistence. Tests
# swap in an in-memory fake. get() is NOT owner-scoped, ConversionService checks user_id before
# handing a record out.
class IConversionRepository(ABC):
    """Repository interface for Conversion entities."""

    @abstractmethod
    async def add(self, conversion: Conversion) -> Conversion:
        """Persist a new conversion and return it with its assigned id."""
        pass

    @abstractmethod
    async def update(self, conversion: Conversion) -> None:
        """Persist changes of an existing conversion."""
        pass

    @abstractmethod
    async def get(self, conversion_id: str) -> Conversion | None:
        """Get a conversion by id."""
        pass

    @abstractmethod
    async def list_by_user(self, user_id: str) -> list[Conversion]:
        """List a user's conversions, newest first."""
        pass

    @abstractmethod
    async def delete(self, conversion_id: str) -> None:
        """Delete a conversion."""
        pass


class ICredentialRepository(ABC):
    """Repository interface for stored OAuth credentials (one per user+platform)."""

    @abstractmethod
    async def get(self, user_id: str, platform: Platform) -> ServiceCredentials | None:
        """Get credentials for a user on a platform."""
        pass

    @abstractmethod
    async def save(self, credentials: ServiceCredentials) -> None:
        """Create or replace credentials (upsert)."""
        pass

    @abstractmethod
    async def delete(self, user_id: str, platform: Platform) -> bool:
        """Delete credentials. Returns True if something was deleted."""
        pass

    @abstractmethod
    async def list_platforms(self, user_id: str) -> list[Platform]:
        """Platforms the user has linked."""
        pass


class IOAuthClient(ABC):
    """Token provider contract: exchange a refresh token for a new access token."""

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Refresh an access token.

        Raises:
            RefreshError: If the provider rejects the refresh token
            ExternalServiceError: On other provider failures
        """
        pass


class IPlaylistSource(ABC):
    """Reads playlists from the source platform."""

    @abstractmethod
    async def get_playlist_info(self, user_id: str, playlist_id: str) -> PlaylistInfo:
        """Get source playlist metadata.

        Raises:
            SourceNotFoundError: If the playlist doesn't exist or isn't visible
        """
        pass

    @abstractmethod
    async def list_tracks(
        self,
        user_id: str,
        playlist_id: str,
        selected_ids: Sequence[str] | None = None,
    ) -> list[TrackDescriptor]:
        """Enumerate the playlist's tracks in source order."""
        pass


class ITrackMatcher(ABC):
    """Finds the destination item for a source track."""

    @abstractmethod
    async def find_best_match(
        self, user_id: str, descriptor: TrackDescriptor
    ) -> MatchResult:
        """Search the destination platform. No result is MatchResult.no_match()."""
        pass


class IPlaylistWriter(ABC):
    """Creates and fills playlists on the destination platform."""

    @abstractmethod
    async def create_playlist(
        self, user_id: str, title: str, description: str, visibility: str
    ) -> str:
        """Create a playlist and return its id."""
        pass

    @abstractmethod
    async def append_item(
        self,
        user_id: str,
        playlist_id: str,
        item_id: str,
        position: int | None = None,
    ) -> dict:
        """Append one item to a playlist."""
        pass


# Hey future me - observers are notified AFTER the conversion state was persisted, so a client
# that re-reads the record on a progress event always sees at least that progress. Observer
# errors are logged by the use case and never abort a run.
class IProgressObserver(ABC):
    """Receives progress of a running conversion."""

    @abstractmethod
    async def on_progress(self, snapshot: ConversionProgress) -> None:
        """Called after each processed track."""
        pass

    async def on_finished(self, conversion: Conversion) -> None:  # noqa: B027
        """Called once when the run reached a terminal state."""
        return None


__all__ = [
    "IConversionRepository",
    "ICredentialRepository",
    "IOAuthClient",
    "IPlaylistSource",
    "ITrackMatcher",
    "IPlaylistWriter",
    "IProgressObserver",
]
