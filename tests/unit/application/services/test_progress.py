"""Tests for progress observers, channels and the broadcaster."""

import asyncio

from tunebridge.application.services.progress import (
    CallbackProgressObserver,
    ProgressBroadcaster,
    ProgressChannel,
)
from tunebridge.domain.entities import Conversion, ConversionProgress, TrackOutcome


def _snapshot(conversion_id: str, processed: int, total: int = 2) -> ConversionProgress:
    return ConversionProgress(
        conversion_id=conversion_id,
        processed=processed,
        total=total,
        current_track=f"Artist - Song {processed}",
        progress=float(round(processed / total * 100)),
        outcome=TrackOutcome.TRANSFERRED,
    )


def _finished(conversion_id: str) -> Conversion:
    conversion = Conversion(user_id="user-1", source_playlist_id="pl-1", id=conversion_id)
    conversion.set_total(0)
    conversion.complete()
    return conversion


async def _drain(channel: ProgressChannel) -> list[object]:
    return [event async for event in channel]


class TestCallbackProgressObserver:
    async def test_sync_callbacks(self) -> None:
        seen: list[object] = []
        observer = CallbackProgressObserver(seen.append, seen.append)

        await observer.on_progress(_snapshot("c1", 1))
        await observer.on_finished(_finished("c1"))

        assert len(seen) == 2

    async def test_async_callback(self) -> None:
        seen: list[ConversionProgress] = []

        async def record(snapshot: ConversionProgress) -> None:
            seen.append(snapshot)

        observer = CallbackProgressObserver(record)
        await observer.on_progress(_snapshot("c1", 1))
        await observer.on_finished(_finished("c1"))

        assert [s.processed for s in seen] == [1]


class TestProgressChannel:
    async def test_yields_progress_then_final_record(self) -> None:
        channel = ProgressChannel("c1")
        await channel.on_progress(_snapshot("c1", 1))
        await channel.on_progress(_snapshot("c1", 2))
        await channel.on_finished(_finished("c1"))

        events = await _drain(channel)

        assert [type(e) for e in events] == [
            ConversionProgress,
            ConversionProgress,
            Conversion,
        ]
        assert channel.closed

    async def test_events_after_close_are_dropped(self) -> None:
        channel = ProgressChannel("c1")
        channel.close()
        await channel.on_progress(_snapshot("c1", 1))

        assert await _drain(channel) == []


class TestProgressBroadcaster:
    async def test_routes_by_conversion_id(self) -> None:
        broadcaster = ProgressBroadcaster()
        first = broadcaster.subscribe("c1")
        second = broadcaster.subscribe("c1")
        other = broadcaster.subscribe("c2")

        await broadcaster.on_progress(_snapshot("c1", 1))
        await broadcaster.on_finished(_finished("c1"))

        assert len(await _drain(first)) == 2
        assert len(await _drain(second)) == 2
        assert broadcaster.subscriber_count("c1") == 0
        assert broadcaster.subscriber_count("c2") == 1
        assert not other.closed

    async def test_unsubscribe_closes_channel(self) -> None:
        broadcaster = ProgressBroadcaster()
        channel = broadcaster.subscribe("c1")

        broadcaster.unsubscribe(channel)
        await broadcaster.on_progress(_snapshot("c1", 1))

        assert channel.closed
        assert await _drain(channel) == []
        assert broadcaster.subscriber_count("c1") == 0

    async def test_live_consumer_sees_events_as_they_arrive(self) -> None:
        broadcaster = ProgressBroadcaster()
        channel = broadcaster.subscribe("c1")
        consumer = asyncio.create_task(_drain(channel))

        await broadcaster.on_progress(_snapshot("c1", 1))
        await broadcaster.on_progress(_snapshot("c1", 2))
        await broadcaster.on_finished(_finished("c1"))

        events = await asyncio.wait_for(consumer, timeout=1)
        assert len(events) == 3

    async def test_close_all(self) -> None:
        broadcaster = ProgressBroadcaster()
        channels = [broadcaster.subscribe("c1"), broadcaster.subscribe("c2")]

        await broadcaster.close_all()

        assert all(c.closed for c in channels)
        assert broadcaster.subscriber_count("c1") == 0
