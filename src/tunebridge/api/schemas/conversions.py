"""API schemas for conversions and platform connections."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from tunebridge.domain.entities import (
    Conversion,
    ConversionStatus,
    Platform,
    PlaylistInfo,
    PlaylistVisibility,
    TrackDescriptor,
)


class ConversionCreateRequest(BaseModel):
    """Request schema for starting a conversion."""

    playlist_id: str = Field(..., min_length=1, description="Spotify playlist ID")
    selected_track_ids: list[str] | None = Field(
        default=None,
        description="Only convert these Spotify track IDs (source order is kept)",
    )
    visibility: PlaylistVisibility | None = Field(
        default=None,
        description="Privacy of the YouTube playlist (defaults to the configured value)",
    )


class ConversionDTO(BaseModel):
    """Conversion record as returned by the API."""

    id: str
    user_id: str
    source_playlist_id: str
    source_type: Platform
    target_playlist_id: str | None
    target_type: Platform
    status: ConversionStatus
    progress: float
    error: str | None
    total_tracks: int | None
    transferred_count: int
    skipped_count: int
    failed_count: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, conversion: Conversion) -> "ConversionDTO":
        return cls(
            id=conversion.id or "",
            user_id=conversion.user_id,
            source_playlist_id=conversion.source_playlist_id,
            source_type=conversion.source_type,
            target_playlist_id=conversion.target_playlist_id,
            target_type=conversion.target_type,
            status=conversion.status,
            progress=conversion.progress,
            error=conversion.error,
            total_tracks=conversion.total_tracks,
            transferred_count=conversion.transferred_count,
            skipped_count=conversion.skipped_count,
            failed_count=conversion.failed_count,
            created_at=conversion.created_at,
            updated_at=conversion.updated_at,
        )


class ConversionListResponse(BaseModel):
    """Conversion history, newest first."""

    items: list[ConversionDTO]
    total: int


class ConnectRequest(BaseModel):
    """Tokens handed over by the external sign-in flow."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    expires_in: int | None = Field(
        default=None, ge=0, description="Seconds until the access token expires"
    )
    scope: str | None = None


class ConnectionStatusResponse(BaseModel):
    """Which platforms the user has linked."""

    connections: dict[str, bool]

    @classmethod
    def from_status(cls, status: dict[Platform, bool]) -> "ConnectionStatusResponse":
        return cls(connections={platform.value: linked for platform, linked in status.items()})


class PlaylistDTO(BaseModel):
    """Playlist summary (Spotify source or existing YouTube playlist)."""

    id: str
    name: str
    description: str | None = None
    track_count: int | None = None
    owner_name: str | None = None

    @classmethod
    def from_entity(cls, info: PlaylistInfo) -> "PlaylistDTO":
        return cls(
            id=info.id,
            name=info.name,
            description=info.description,
            track_count=info.track_count,
            owner_name=info.owner_name,
        )


class TrackDTO(BaseModel):
    """Source track, its id is what selected_track_ids refers to."""

    id: str
    title: str
    artists: list[str]
    duration_ms: int | None = None

    @classmethod
    def from_entity(cls, track: TrackDescriptor) -> "TrackDTO":
        return cls(
            id=track.id,
            title=track.title,
            artists=list(track.artists),
            duration_ms=track.duration_ms,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="healthy or degraded")
    timestamp: str
    version: str
    checks: dict[str, Any] = Field(default_factory=dict)
