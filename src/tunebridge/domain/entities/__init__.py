"""Domain entities."""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from tunebridge.domain.exceptions import InvalidStateException, ValidationException


class Platform(str, Enum):
    """Music platforms a playlist can be converted from or to."""

    SPOTIFY = "spotify"
    YOUTUBE = "youtube"

    @property
    def display_name(self) -> str:
        """Human-readable platform name used in playlist titles."""
        return {"spotify": "Spotify", "youtube": "YouTube"}[self.value]


class PlaylistVisibility(str, Enum):
    """Privacy status of a destination playlist."""

    PRIVATE = "private"
    PUBLIC = "public"
    UNLISTED = "unlisted"


# Yo, ConversionStatus is the STATE MACHINE for conversions! Transitions are one-way:
# PROCESSING → COMPLETED or PROCESSING → FAILED. A failed or completed conversion is never
# resumed - converting again creates a NEW Conversion record. Use Conversion.complete() and
# .fail() instead of assigning status directly, they enforce the transitions.
class ConversionStatus(str, Enum):
    """Status of a playlist conversion."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TrackOutcome(str, Enum):
    """What happened to a single track during a conversion run."""

    TRANSFERRED = "transferred"  # Matched and appended
    SKIPPED = "skipped"  # No search match (or duplicate when dedup is enabled)
    FAILED = "failed"  # Exception while matching or appending


# Hey future me, Conversion is the audit trail of ONE conversion run. progress only moves
# forward while processing, target_playlist_id is set exactly once (before any append), and
# error is only allowed on FAILED records. __post_init__ enforces the schema so a bad row from
# the database blows up at the repository boundary instead of deep inside the pipeline.
@dataclass
class Conversion:
    """Conversion entity - one run of the playlist conversion pipeline."""

    user_id: str
    source_playlist_id: str
    source_type: Platform = Platform.SPOTIFY
    target_type: Platform = Platform.YOUTUBE
    id: str | None = None
    target_playlist_id: str | None = None
    status: ConversionStatus = ConversionStatus.PROCESSING
    progress: float = 0.0
    error: str | None = None
    total_tracks: int | None = None
    transferred_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Validate conversion data."""
        if not self.user_id or not self.user_id.strip():
            raise ValidationException("Conversion user_id cannot be empty")
        if not self.source_playlist_id or not self.source_playlist_id.strip():
            raise ValidationException("Conversion source_playlist_id cannot be empty")
        try:
            self.status = ConversionStatus(self.status)
            self.source_type = Platform(self.source_type)
            self.target_type = Platform(self.target_type)
        except ValueError as e:
            raise ValidationException(f"Invalid conversion field: {e}") from e
        if self.progress < 0.0 or self.progress > 100.0:
            raise ValidationException("Progress must be between 0 and 100")
        if self.error is not None and self.status != ConversionStatus.FAILED:
            raise ValidationException("Only failed conversions can carry an error")
        if min(self.transferred_count, self.skipped_count, self.failed_count) < 0:
            raise ValidationException("Track counters cannot be negative")

    @property
    def processed_count(self) -> int:
        """Number of tracks attempted so far."""
        return self.transferred_count + self.skipped_count + self.failed_count

    def is_finished(self) -> bool:
        """Check if conversion reached a terminal state."""
        return self.status in (ConversionStatus.COMPLETED, ConversionStatus.FAILED)

    def _ensure_processing(self, action: str) -> None:
        if self.status != ConversionStatus.PROCESSING:
            raise InvalidStateException(
                f"Cannot {action} conversion in status {self.status.value}"
            )

    def attach_target_playlist(self, playlist_id: str) -> None:
        """Record the destination playlist id. Allowed exactly once."""
        self._ensure_processing("attach target playlist to")
        if self.target_playlist_id is not None:
            raise InvalidStateException(
                f"Conversion already has target playlist {self.target_playlist_id}"
            )
        if not playlist_id:
            raise ValidationException("Target playlist id cannot be empty")
        self.target_playlist_id = playlist_id
        self.updated_at = datetime.now(UTC)

    def set_total(self, total: int) -> None:
        """Record how many tracks this run will attempt."""
        self._ensure_processing("set total of")
        if total < 0:
            raise ValidationException("Total tracks cannot be negative")
        self.total_tracks = total
        self.updated_at = datetime.now(UTC)

    def record_track(self, outcome: TrackOutcome) -> None:
        """Count one processed track and recompute progress.

        Progress is processed / total * 100 rounded half up (1 of 8 is 13, not
        the 12 banker's rounding would give), which never decreases as
        processed grows.
        """
        self._ensure_processing("record progress on")
        if self.total_tracks is None:
            raise InvalidStateException("Cannot record tracks before total is known")
        if self.processed_count >= self.total_tracks:
            raise InvalidStateException("All tracks have already been recorded")

        if outcome == TrackOutcome.TRANSFERRED:
            self.transferred_count += 1
        elif outcome == TrackOutcome.SKIPPED:
            self.skipped_count += 1
        else:
            self.failed_count += 1

        # Integer math keeps exact halves exact
        new_progress = float(
            (200 * self.processed_count + self.total_tracks) // (2 * self.total_tracks)
        )
        self.progress = max(self.progress, new_progress)
        self.updated_at = datetime.now(UTC)

    def complete(self) -> None:
        """Mark conversion as completed."""
        self._ensure_processing("complete")
        self.status = ConversionStatus.COMPLETED
        self.progress = 100.0
        self.updated_at = datetime.now(UTC)

    def fail(self, error_message: str) -> None:
        """Mark conversion as failed with a human-readable reason."""
        self._ensure_processing("fail")
        self.status = ConversionStatus.FAILED
        self.error = error_message.strip() or "Conversion failed"
        self.updated_at = datetime.now(UTC)


@dataclass(frozen=True)
class TrackDescriptor:
    """A source track as far as the conversion pipeline cares."""

    id: str
    title: str
    artists: tuple[str, ...] = ()
    duration_ms: int | None = None

    @property
    def primary_artist(self) -> str:
        """First credited artist, or an empty string if unknown."""
        return self.artists[0] if self.artists else ""

    @property
    def display_name(self) -> str:
        """'Artist - Title' for logs and progress reporting."""
        if self.primary_artist:
            return f"{self.primary_artist} - {self.title}"
        return self.title


@dataclass(frozen=True)
class MatchResult:
    """Best destination match for one track. item_id is None when nothing matched."""

    item_id: str | None = None
    title: str | None = None

    @property
    def found(self) -> bool:
        """True if the search produced a usable item."""
        return self.item_id is not None

    @classmethod
    def no_match(cls) -> "MatchResult":
        """Legitimate empty search result - a skip, not an error."""
        return cls()


@dataclass(frozen=True)
class PlaylistInfo:
    """Source playlist metadata."""

    id: str
    name: str
    description: str | None = None
    track_count: int | None = None
    owner_name: str | None = None


@dataclass(frozen=True)
class ConversionProgress:
    """Snapshot sent to progress observers after every processed track."""

    conversion_id: str
    processed: int
    total: int
    current_track: str
    progress: float
    outcome: TrackOutcome

    def to_dict(self) -> dict[str, Any]:
        """Serialize for SSE / JSON payloads."""
        return {
            "conversion_id": self.conversion_id,
            "processed": self.processed,
            "total": self.total,
            "current_track": self.current_track,
            "progress": self.progress,
            "outcome": self.outcome.value,
        }


@dataclass(frozen=True)
class TokenGrant:
    """Result of a token refresh.

    Hey future me - refresh_token might be None on refresh!
    Spotify and Google don't always rotate it, keep the old one then.
    """

    access_token: str
    expires_in: int | None = 3600
    refresh_token: str | None = None
    token_type: str = "Bearer"
    scope: str | None = None


# Hey future me, ServiceCredentials is ONE linked account (user + platform). expires_at may be
# None for Google grants stored without expiry - those count as valid until a downstream 401
# tells us otherwise. is_expired() takes the safety buffer so tokens about to die get refreshed
# BEFORE we hand them to a long playlist run.
@dataclass(frozen=True)
class ServiceCredentials:
    """Stored OAuth credentials for one user on one platform."""

    user_id: str
    platform: Platform
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    scope: str | None = None

    def is_expired(self, buffer_seconds: int = 0, now: datetime | None = None) -> bool:
        """Check if token is expired (or expires within buffer_seconds)."""
        if self.expires_at is None:
            return False
        current = now or datetime.now(UTC)
        return current >= self.expires_at - timedelta(seconds=buffer_seconds)

    def seconds_until_expiry(self, now: datetime | None = None) -> float | None:
        """Remaining lifetime in seconds, None when unknown."""
        if self.expires_at is None:
            return None
        current = now or datetime.now(UTC)
        return (self.expires_at - current).total_seconds()

    def with_grant(
        self, grant: TokenGrant, now: datetime | None = None
    ) -> "ServiceCredentials":
        """Return updated credentials after a successful refresh."""
        current = now or datetime.now(UTC)
        expires_at = (
            current + timedelta(seconds=grant.expires_in)
            if grant.expires_in is not None
            else None
        )
        return replace(
            self,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token or self.refresh_token,
            expires_at=expires_at,
            scope=grant.scope or self.scope,
        )


__all__ = [
    "Platform",
    "PlaylistVisibility",
    "ConversionStatus",
    "TrackOutcome",
    "Conversion",
    "TrackDescriptor",
    "MatchResult",
    "PlaylistInfo",
    "ConversionProgress",
    "TokenGrant",
    "ServiceCredentials",
]
