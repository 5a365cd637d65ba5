"""Tests for domain entities."""

from datetime import UTC, datetime, timedelta

import pytest

from tunebridge.domain.entities import (
    Conversion,
    ConversionProgress,
    ConversionStatus,
    MatchResult,
    Platform,
    ServiceCredentials,
    TokenGrant,
    TrackDescriptor,
    TrackOutcome,
)
from tunebridge.domain.exceptions import InvalidStateException, ValidationException


def _conversion(**overrides) -> Conversion:
    values = {"user_id": "user-1", "source_playlist_id": "pl-1"}
    values.update(overrides)
    return Conversion(**values)


class TestConversionValidation:
    """Schema checks run on construction (also for rows read from the database)."""

    def test_defaults(self) -> None:
        conversion = _conversion()
        assert conversion.status == ConversionStatus.PROCESSING
        assert conversion.progress == 0.0
        assert conversion.source_type == Platform.SPOTIFY
        assert conversion.target_type == Platform.YOUTUBE
        assert conversion.target_playlist_id is None
        assert conversion.error is None

    def test_empty_user_id_rejected(self) -> None:
        with pytest.raises(ValidationException):
            _conversion(user_id="  ")

    def test_empty_playlist_id_rejected(self) -> None:
        with pytest.raises(ValidationException):
            _conversion(source_playlist_id="")

    @pytest.mark.parametrize("progress", [-0.1, 100.5])
    def test_progress_out_of_range_rejected(self, progress: float) -> None:
        with pytest.raises(ValidationException):
            _conversion(progress=progress)

    def test_unknown_status_rejected(self) -> None:
        with pytest.raises(ValidationException):
            _conversion(status="paused")

    def test_string_values_are_coerced(self) -> None:
        """Repository rows carry plain strings."""
        conversion = _conversion(status="completed", source_type="spotify", progress=100.0)
        assert conversion.status is ConversionStatus.COMPLETED
        assert conversion.source_type is Platform.SPOTIFY

    def test_error_only_on_failed(self) -> None:
        with pytest.raises(ValidationException):
            _conversion(error="boom")
        failed = _conversion(status="failed", error="boom")
        assert failed.error == "boom"

    def test_negative_counter_rejected(self) -> None:
        with pytest.raises(ValidationException):
            _conversion(skipped_count=-1)


class TestConversionLifecycle:
    """State transitions and progress arithmetic."""

    def test_attach_target_playlist_once(self) -> None:
        conversion = _conversion()
        conversion.attach_target_playlist("yt-1")
        assert conversion.target_playlist_id == "yt-1"
        with pytest.raises(InvalidStateException):
            conversion.attach_target_playlist("yt-2")

    def test_progress_is_rounded_percentage(self) -> None:
        conversion = _conversion()
        conversion.set_total(3)

        conversion.record_track(TrackOutcome.TRANSFERRED)
        assert conversion.progress == 33.0
        conversion.record_track(TrackOutcome.SKIPPED)
        assert conversion.progress == 67.0
        conversion.record_track(TrackOutcome.FAILED)
        assert conversion.progress == 100.0

        assert conversion.transferred_count == 1
        assert conversion.skipped_count == 1
        assert conversion.failed_count == 1
        assert conversion.processed_count == 3

    def test_progress_rounds_halves_up(self) -> None:
        conversion = _conversion()
        conversion.set_total(8)

        recorded = []
        for _ in range(8):
            conversion.record_track(TrackOutcome.TRANSFERRED)
            recorded.append(conversion.progress)

        assert recorded == [13.0, 25.0, 38.0, 50.0, 63.0, 75.0, 88.0, 100.0]

    def test_record_before_total_is_known(self) -> None:
        with pytest.raises(InvalidStateException):
            _conversion().record_track(TrackOutcome.TRANSFERRED)

    def test_record_more_than_total(self) -> None:
        conversion = _conversion()
        conversion.set_total(1)
        conversion.record_track(TrackOutcome.TRANSFERRED)
        with pytest.raises(InvalidStateException):
            conversion.record_track(TrackOutcome.TRANSFERRED)

    def test_complete_sets_progress_to_100(self) -> None:
        conversion = _conversion()
        conversion.set_total(0)
        conversion.complete()
        assert conversion.status == ConversionStatus.COMPLETED
        assert conversion.progress == 100.0
        assert conversion.is_finished()

    def test_fail_keeps_message(self) -> None:
        conversion = _conversion()
        conversion.fail("Source playlist pl-1 not found")
        assert conversion.status == ConversionStatus.FAILED
        assert conversion.error == "Source playlist pl-1 not found"

    def test_fail_with_blank_message_uses_fallback(self) -> None:
        conversion = _conversion()
        conversion.fail("   ")
        assert conversion.error == "Conversion failed"

    def test_finished_conversion_cannot_change(self) -> None:
        conversion = _conversion()
        conversion.fail("boom")
        with pytest.raises(InvalidStateException):
            conversion.complete()
        with pytest.raises(InvalidStateException):
            conversion.set_total(2)


class TestTrackDescriptor:
    def test_display_name_with_artist(self) -> None:
        track = TrackDescriptor(id="t1", title="Song", artists=("Band", "Guest"))
        assert track.primary_artist == "Band"
        assert track.display_name == "Band - Song"

    def test_display_name_without_artist(self) -> None:
        track = TrackDescriptor(id="t1", title="Song")
        assert track.primary_artist == ""
        assert track.display_name == "Song"


class TestMatchResult:
    def test_no_match(self) -> None:
        assert MatchResult.no_match().found is False

    def test_found(self) -> None:
        assert MatchResult(item_id="vid").found is True


class TestConversionProgress:
    def test_to_dict(self) -> None:
        snapshot = ConversionProgress(
            conversion_id="c1",
            processed=2,
            total=4,
            current_track="Band - Song",
            progress=50.0,
            outcome=TrackOutcome.SKIPPED,
        )
        assert snapshot.to_dict() == {
            "conversion_id": "c1",
            "processed": 2,
            "total": 4,
            "current_track": "Band - Song",
            "progress": 50.0,
            "outcome": "skipped",
        }


class TestServiceCredentials:
    """Expiry handling with the refresh safety buffer."""

    NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def _credentials(self, expires_in: int | None) -> ServiceCredentials:
        return ServiceCredentials(
            user_id="user-1",
            platform=Platform.SPOTIFY,
            access_token="old",
            refresh_token="refresh",
            expires_at=(
                self.NOW + timedelta(seconds=expires_in) if expires_in is not None else None
            ),
            scope="playlist-read-private",
        )

    def test_unknown_expiry_is_valid(self) -> None:
        assert self._credentials(None).is_expired(300, now=self.NOW) is False
        assert self._credentials(None).seconds_until_expiry(now=self.NOW) is None

    def test_expiring_within_buffer_counts_as_expired(self) -> None:
        credentials = self._credentials(120)
        assert credentials.is_expired(0, now=self.NOW) is False
        assert credentials.is_expired(300, now=self.NOW) is True

    def test_with_grant_keeps_old_refresh_token(self) -> None:
        updated = self._credentials(-10).with_grant(
            TokenGrant(access_token="new", expires_in=3600), now=self.NOW
        )
        assert updated.access_token == "new"
        assert updated.refresh_token == "refresh"
        assert updated.scope == "playlist-read-private"
        assert updated.expires_at == self.NOW + timedelta(seconds=3600)

    def test_with_grant_takes_rotated_refresh_token(self) -> None:
        updated = self._credentials(-10).with_grant(
            TokenGrant(access_token="new", refresh_token="rotated", expires_in=None),
            now=self.NOW,
        )
        assert updated.refresh_token == "rotated"
        assert updated.expires_at is None


class TestPlatform:
    def test_display_names(self) -> None:
        assert Platform.SPOTIFY.display_name == "Spotify"
        assert Platform.YOUTUBE.display_name == "YouTube"
