"""Use case for converting a Spotify playlist into a YouTube playlist.

Hey future me - this is THE conversion pipeline! The flow:
1. Persist a new Conversion record (processing, progress 0)
2. Read the Spotify playlist metadata (SourceNotFoundError → record failed)
3. Create the YouTube playlist and persist its id right away
4. Enumerate the Spotify tracks (optionally only the selected ones)
5. For each track IN ORDER: search YouTube, append the top hit, persist
   progress, notify the observer
6. Mark completed (progress 100)

Failure semantics - remember these, they're the whole point:
- Anything failing in steps 2-4 marks the record FAILED and re-raises
- Anything failing for ONE track in step 5 is logged and counted, the loop
  moves on. A run with 40 failed tracks out of 50 is still "completed",
  the counters tell the real story
- Progress persistence or observer errors inside the loop are logged only

Tracks are processed sequentially: appends must land in source
order, and YouTube quota is the bottleneck anyway.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from tunebridge.application.use_cases import UseCase
from tunebridge.domain.entities import (
    Conversion,
    ConversionProgress,
    ConversionStatus,
    Platform,
    PlaylistVisibility,
    TrackDescriptor,
    TrackOutcome,
)
from tunebridge.domain.exceptions import DomainException
from tunebridge.domain.ports import (
    IConversionRepository,
    IPlaylistSource,
    IPlaylistWriter,
    IProgressObserver,
    ITrackMatcher,
)
from tunebridge.infrastructure.observability.logging import correlation_scope

logger = logging.getLogger(__name__)

FALLBACK_DESCRIPTION = "Converted from Spotify"


@dataclass
class ConvertPlaylistRequest:
    """Request to convert one Spotify playlist.

    selected_track_ids limits the conversion to those tracks (source order is
    kept). None or empty converts everything.
    """

    user_id: str
    playlist_id: str
    selected_track_ids: Sequence[str] | None = None
    visibility: PlaylistVisibility = PlaylistVisibility.PRIVATE


@dataclass
class ConvertPlaylistResponse:
    """Outcome of a conversion run."""

    conversion_id: str
    target_playlist_id: str | None
    status: ConversionStatus
    total_tracks: int
    transferred_count: int
    skipped_count: int
    failed_count: int
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True if at least one track made it into the YouTube playlist."""
        return self.transferred_count > 0


class ConvertPlaylistUseCase(UseCase[ConvertPlaylistRequest, ConvertPlaylistResponse]):
    """Convert a Spotify playlist into a YouTube playlist."""

    def __init__(
        self,
        conversion_repository: IConversionRepository,
        playlist_source: IPlaylistSource,
        track_matcher: ITrackMatcher,
        playlist_writer: IPlaylistWriter,
        progress_observer: IProgressObserver | None = None,
        skip_duplicate_items: bool = False,
    ) -> None:
        self._conversions = conversion_repository
        self._source = playlist_source
        self._matcher = track_matcher
        self._writer = playlist_writer
        self._observer = progress_observer
        self._skip_duplicates = skip_duplicate_items

    async def execute(self, request: ConvertPlaylistRequest) -> ConvertPlaylistResponse:
        """Create the record and run the whole conversion."""
        conversion = await self.create_record(request)
        return await self.run(conversion, request)

    async def create_record(self, request: ConvertPlaylistRequest) -> Conversion:
        """Persist the processing record (step 1).

        Split from run() so callers can hand out the id before the run finishes.

        Raises:
            ValidationException: If user_id or playlist_id is empty
        """
        conversion = Conversion(
            user_id=request.user_id,
            source_playlist_id=request.playlist_id,
            source_type=Platform.SPOTIFY,
            target_type=Platform.YOUTUBE,
        )
        conversion = await self._conversions.add(conversion)
        logger.info(
            "Created conversion %s for Spotify playlist %s (user %s)",
            conversion.id,
            request.playlist_id,
            request.user_id,
        )
        return conversion

    async def run(
        self, conversion: Conversion, request: ConvertPlaylistRequest
    ) -> ConvertPlaylistResponse:
        """Run steps 2-6 on an already persisted record."""
        with correlation_scope(conversion.id or ""):
            tracks = await self._prepare(conversion, request)
            errors = await self._convert_tracks(conversion, request.user_id, tracks)

            conversion.complete()
            await self._conversions.update(conversion)
            logger.info(
                "Conversion %s completed: %d transferred, %d skipped, %d failed of %d",
                conversion.id,
                conversion.transferred_count,
                conversion.skipped_count,
                conversion.failed_count,
                len(tracks),
            )
            await self._notify_finished(conversion)
            return self._response(conversion, errors)

    # Setup: every failure here is fatal for the run
    async def _prepare(
        self, conversion: Conversion, request: ConvertPlaylistRequest
    ) -> list[TrackDescriptor]:
        try:
            info = await self._source.get_playlist_info(
                request.user_id, request.playlist_id
            )
            playlist_id = await self._writer.create_playlist(
                request.user_id,
                f"{info.name} (from {Platform.SPOTIFY.display_name})",
                info.description or FALLBACK_DESCRIPTION,
                PlaylistVisibility(request.visibility).value,
            )
            conversion.attach_target_playlist(playlist_id)
            await self._conversions.update(conversion)

            tracks = await self._source.list_tracks(
                request.user_id, request.playlist_id, request.selected_track_ids
            )
            conversion.set_total(len(tracks))
            await self._conversions.update(conversion)
        except Exception as e:
            logger.error(
                "Conversion %s failed during setup: %s", conversion.id, e, exc_info=True
            )
            await self._mark_failed(conversion, e)
            raise

        logger.info(
            "Converting %d tracks of '%s' into YouTube playlist %s",
            len(tracks),
            info.name,
            conversion.target_playlist_id,
        )
        return tracks

    async def _convert_tracks(
        self, conversion: Conversion, user_id: str, tracks: list[TrackDescriptor]
    ) -> list[str]:
        errors: list[str] = []
        appended: set[str] = set()
        total = len(tracks)
        target_playlist_id = conversion.target_playlist_id
        assert target_playlist_id is not None

        for index, track in enumerate(tracks, start=1):
            try:
                outcome = await self._convert_track(
                    user_id, target_playlist_id, track, appended
                )
            except Exception as e:
                logger.warning(
                    "Track %d/%d '%s' failed: %s", index, total, track.display_name, e
                )
                errors.append(f"{track.display_name}: {e}")
                outcome = TrackOutcome.FAILED

            conversion.record_track(outcome)
            try:
                await self._conversions.update(conversion)
            except Exception as e:
                logger.error(
                    "Could not persist progress of conversion %s: %s", conversion.id, e
                )

            await self._notify_progress(
                ConversionProgress(
                    conversion_id=conversion.id or "",
                    processed=index,
                    total=total,
                    current_track=track.display_name,
                    progress=conversion.progress,
                    outcome=outcome,
                )
            )

        return errors

    async def _convert_track(
        self,
        user_id: str,
        playlist_id: str,
        track: TrackDescriptor,
        appended: set[str],
    ) -> TrackOutcome:
        match = await self._matcher.find_best_match(user_id, track)
        if not match.found or match.item_id is None:
            logger.debug("No match for '%s', skipping", track.display_name)
            return TrackOutcome.SKIPPED

        if self._skip_duplicates and match.item_id in appended:
            logger.debug(
                "'%s' matched %s which is already in the playlist, skipping",
                track.display_name,
                match.item_id,
            )
            return TrackOutcome.SKIPPED

        await self._writer.append_item(user_id, playlist_id, match.item_id)
        appended.add(match.item_id)
        return TrackOutcome.TRANSFERRED

    async def _mark_failed(self, conversion: Conversion, error: Exception) -> None:
        message = error.message if isinstance(error, DomainException) else str(error)
        conversion.fail(message or type(error).__name__)
        try:
            await self._conversions.update(conversion)
        except Exception as e:
            logger.error(
                "Could not persist failure of conversion %s: %s", conversion.id, e
            )
        await self._notify_finished(conversion)

    async def _notify_progress(self, snapshot: ConversionProgress) -> None:
        if self._observer is None:
            return
        try:
            await self._observer.on_progress(snapshot)
        except Exception as e:
            logger.warning("Progress observer failed: %s", e)

    async def _notify_finished(self, conversion: Conversion) -> None:
        if self._observer is None:
            return
        try:
            await self._observer.on_finished(conversion)
        except Exception as e:
            logger.warning("Progress observer failed on finish: %s", e)

    @staticmethod
    def _response(conversion: Conversion, errors: list[str]) -> ConvertPlaylistResponse:
        return ConvertPlaylistResponse(
            conversion_id=conversion.id or "",
            target_playlist_id=conversion.target_playlist_id,
            status=conversion.status,
            total_tracks=conversion.total_tracks or 0,
            transferred_count=conversion.transferred_count,
            skipped_count=conversion.skipped_count,
            failed_count=conversion.failed_count,
            errors=errors,
        )
