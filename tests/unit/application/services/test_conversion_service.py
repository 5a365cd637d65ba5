"""Tests for ConversionService (background runs, ownership, deletion, subscriptions)."""

import asyncio

import pytest
from fakes import (
    FakePlaylistSource,
    FakePlaylistWriter,
    FakeTrackMatcher,
    InMemoryConversionRepository,
    make_tracks,
)

from tunebridge.application.services.conversion_service import ConversionService
from tunebridge.application.services.progress import ProgressBroadcaster
from tunebridge.application.use_cases.convert_playlist import (
    ConvertPlaylistRequest,
    ConvertPlaylistUseCase,
)
from tunebridge.domain.entities import Conversion, ConversionProgress, ConversionStatus
from tunebridge.domain.exceptions import EntityNotFoundException, InvalidStateException


class GatedMatcher(FakeTrackMatcher):
    """Blocks every search until the test opens the gate."""

    def __init__(self) -> None:
        super().__init__({"t1": "v1", "t2": "v2"})
        self.gate = asyncio.Event()

    async def find_best_match(self, user_id, descriptor):  # type: ignore[no-untyped-def]
        await self.gate.wait()
        return await super().find_best_match(user_id, descriptor)


@pytest.fixture
def matcher() -> GatedMatcher:
    return GatedMatcher()


@pytest.fixture
def source() -> FakePlaylistSource:
    return FakePlaylistSource(make_tracks(2))


@pytest.fixture
def broadcaster() -> ProgressBroadcaster:
    return ProgressBroadcaster()


@pytest.fixture
def service(
    conversion_repository: InMemoryConversionRepository,
    source: FakePlaylistSource,
    matcher: GatedMatcher,
    broadcaster: ProgressBroadcaster,
) -> ConversionService:
    use_case = ConvertPlaylistUseCase(
        conversion_repository,
        source,
        matcher,
        FakePlaylistWriter(),
        progress_observer=broadcaster,
    )
    return ConversionService(conversion_repository, use_case, broadcaster)


def _request(user_id: str = "user-1", playlist_id: str = "pl-1") -> ConvertPlaylistRequest:
    return ConvertPlaylistRequest(user_id=user_id, playlist_id=playlist_id)


class TestStartConversion:
    async def test_returns_processing_record_immediately(
        self, service: ConversionService, matcher: GatedMatcher
    ) -> None:
        conversion = await service.start_conversion(_request())

        assert conversion.id is not None
        assert conversion.status == ConversionStatus.PROCESSING
        assert service.is_running(conversion.id)

        matcher.gate.set()
        await service.wait_for(conversion.id)

        stored = await service.get_conversion("user-1", conversion.id)
        assert stored.status == ConversionStatus.COMPLETED
        assert stored.transferred_count == 2
        assert not service.is_running(conversion.id)

    async def test_failed_run_is_recorded_not_raised(
        self, service: ConversionService, matcher: GatedMatcher
    ) -> None:
        matcher.gate.set()
        conversion = await service.start_conversion(_request(playlist_id="missing"))
        assert conversion.id is not None

        await service.wait_for(conversion.id)

        stored = await service.get_conversion("user-1", conversion.id)
        assert stored.status == ConversionStatus.FAILED
        assert stored.error == "Source playlist missing not found"

    async def test_shutdown_cancels_running_conversions(
        self, service: ConversionService
    ) -> None:
        conversion = await service.start_conversion(_request())
        assert conversion.id is not None
        await asyncio.sleep(0)

        await service.shutdown()

        assert not service.is_running(conversion.id)


class TestOwnership:
    async def test_foreign_conversion_looks_missing(
        self, service: ConversionService, matcher: GatedMatcher
    ) -> None:
        matcher.gate.set()
        conversion = await service.start_conversion(_request())
        assert conversion.id is not None
        await service.wait_for(conversion.id)

        with pytest.raises(EntityNotFoundException):
            await service.get_conversion("user-2", conversion.id)
        with pytest.raises(EntityNotFoundException):
            await service.delete_conversion("user-2", conversion.id)
        assert await service.list_conversions("user-2") == []

    async def test_unknown_id(self, service: ConversionService) -> None:
        with pytest.raises(EntityNotFoundException):
            await service.get_conversion("user-1", "nope")

    async def test_list_is_newest_first(
        self, service: ConversionService, matcher: GatedMatcher
    ) -> None:
        matcher.gate.set()
        first = await service.start_conversion(_request())
        second = await service.start_conversion(_request())
        await service.wait_for(first.id or "")
        await service.wait_for(second.id or "")

        history = await service.list_conversions("user-1")

        assert [c.id for c in history] == [second.id, first.id]


class TestDeletion:
    async def test_processing_conversion_cannot_be_deleted(
        self, service: ConversionService, matcher: GatedMatcher
    ) -> None:
        conversion = await service.start_conversion(_request())
        assert conversion.id is not None

        with pytest.raises(InvalidStateException):
            await service.delete_conversion("user-1", conversion.id)

        matcher.gate.set()
        await service.wait_for(conversion.id)

    async def test_finished_conversion_is_deleted(
        self,
        service: ConversionService,
        matcher: GatedMatcher,
        conversion_repository: InMemoryConversionRepository,
    ) -> None:
        matcher.gate.set()
        conversion = await service.start_conversion(_request())
        assert conversion.id is not None
        await service.wait_for(conversion.id)

        await service.delete_conversion("user-1", conversion.id)

        assert conversion.id not in conversion_repository.rows


class TestSubscribe:
    async def test_live_progress_then_final_record(
        self, service: ConversionService, matcher: GatedMatcher
    ) -> None:
        conversion = await service.start_conversion(_request())
        assert conversion.id is not None
        channel = await service.subscribe("user-1", conversion.id)

        matcher.gate.set()
        events = [event async for event in channel]

        assert [type(e) for e in events] == [
            ConversionProgress,
            ConversionProgress,
            Conversion,
        ]
        assert events[-1].status == ConversionStatus.COMPLETED  # type: ignore[union-attr]

    async def test_finished_conversion_yields_only_final_record(
        self, service: ConversionService, matcher: GatedMatcher
    ) -> None:
        matcher.gate.set()
        conversion = await service.start_conversion(_request())
        assert conversion.id is not None
        await service.wait_for(conversion.id)

        channel = await service.subscribe("user-1", conversion.id)
        events = [event async for event in channel]

        assert len(events) == 1
        assert isinstance(events[0], Conversion)

    async def test_foreign_subscription_rejected(
        self, service: ConversionService, matcher: GatedMatcher
    ) -> None:
        conversion = await service.start_conversion(_request())
        assert conversion.id is not None

        with pytest.raises(EntityNotFoundException):
            await service.subscribe("user-2", conversion.id)

        matcher.gate.set()
        await service.wait_for(conversion.id)


class SlowReadRepository(InMemoryConversionRepository):
    """get() takes its snapshot, then stalls until the test releases it."""

    def __init__(self) -> None:
        super().__init__()
        self.reading = asyncio.Event()
        self.release = asyncio.Event()

    async def get(self, conversion_id: str) -> Conversion | None:
        snapshot = await super().get(conversion_id)
        self.reading.set()
        await self.release.wait()
        return snapshot


class TestSubscribeDuringFinish:
    async def test_run_finishing_during_read_still_closes_channel(
        self,
        source: FakePlaylistSource,
        matcher: GatedMatcher,
        broadcaster: ProgressBroadcaster,
    ) -> None:
        repository = SlowReadRepository()
        use_case = ConvertPlaylistUseCase(
            repository,
            source,
            matcher,
            FakePlaylistWriter(),
            progress_observer=broadcaster,
        )
        service = ConversionService(repository, use_case, broadcaster)
        conversion = await service.start_conversion(_request())
        assert conversion.id is not None

        subscribing = asyncio.create_task(service.subscribe("user-1", conversion.id))
        await repository.reading.wait()

        matcher.gate.set()
        await service.wait_for(conversion.id)
        repository.release.set()
        channel = await subscribing

        async def drain() -> list:
            return [event async for event in channel]

        events = await asyncio.wait_for(drain(), 1.0)

        assert isinstance(events[-1], Conversion)
        assert events[-1].status == ConversionStatus.COMPLETED
        assert broadcaster.subscriber_count(conversion.id) == 0

    async def test_rejected_subscription_leaves_no_channel(
        self, service: ConversionService, broadcaster: ProgressBroadcaster
    ) -> None:
        with pytest.raises(EntityNotFoundException):
            await service.subscribe("user-1", "conv-404")

        assert broadcaster.subscriber_count("conv-404") == 0
