"""Progress reporting for running conversions.

Hey future me - three flavours of IProgressObserver live here:
- CallbackProgressObserver: wraps a plain function (sync or async), handy for
  scripts and tests
- ProgressChannel: async iterator of events for ONE conversion, what the SSE
  endpoint consumes
- ProgressBroadcaster: the one observer ConversionService passes to every run,
  fans events out to all channels subscribed to that conversion

Channels are unbounded queues. A slow SSE client can never block the
conversion loop, at worst it buffers one snapshot per track.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from typing import Any

from tunebridge.domain.entities import Conversion, ConversionProgress
from tunebridge.domain.ports import IProgressObserver

logger = logging.getLogger(__name__)

ProgressEvent = ConversionProgress | Conversion


class CallbackProgressObserver(IProgressObserver):
    """Adapts plain callables to the observer interface."""

    def __init__(
        self,
        on_progress: Callable[[ConversionProgress], Any],
        on_finished: Callable[[Conversion], Any] | None = None,
    ) -> None:
        self._on_progress = on_progress
        self._on_finished = on_finished

    async def on_progress(self, snapshot: ConversionProgress) -> None:
        result = self._on_progress(snapshot)
        if inspect.isawaitable(result):
            await result

    async def on_finished(self, conversion: Conversion) -> None:
        if self._on_finished is None:
            return
        result = self._on_finished(conversion)
        if inspect.isawaitable(result):
            await result


class ProgressChannel(IProgressObserver):
    """Async iterator over the progress of one conversion.

    Yields ConversionProgress snapshots, then the final Conversion record, then stops.
    """

    _CLOSED = object()

    def __init__(self, conversion_id: str) -> None:
        self.conversion_id = conversion_id
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def on_progress(self, snapshot: ConversionProgress) -> None:
        if not self._closed:
            self._queue.put_nowait(snapshot)

    async def on_finished(self, conversion: Conversion) -> None:
        if not self._closed:
            self._queue.put_nowait(conversion)
        self.close()

    def close(self) -> None:
        """Stop iteration after the already queued events."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self

    async def __anext__(self) -> ProgressEvent:
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[no-any-return]


class ProgressBroadcaster(IProgressObserver):
    """Fans progress of every conversion out to its subscribed channels."""

    def __init__(self) -> None:
        self._channels: dict[str, set[ProgressChannel]] = defaultdict(set)

    def subscribe(self, conversion_id: str) -> ProgressChannel:
        channel = ProgressChannel(conversion_id)
        self._channels[conversion_id].add(channel)
        return channel

    def unsubscribe(self, channel: ProgressChannel) -> None:
        channel.close()
        subscribers = self._channels.get(channel.conversion_id)
        if subscribers is None:
            return
        subscribers.discard(channel)
        if not subscribers:
            del self._channels[channel.conversion_id]

    def subscriber_count(self, conversion_id: str) -> int:
        return len(self._channels.get(conversion_id, ()))

    async def on_progress(self, snapshot: ConversionProgress) -> None:
        for channel in list(self._channels.get(snapshot.conversion_id, ())):
            await channel.on_progress(snapshot)

    async def on_finished(self, conversion: Conversion) -> None:
        if conversion.id is None:
            return
        channels = self._channels.pop(conversion.id, set())
        for channel in channels:
            await channel.on_finished(conversion)
        if channels:
            logger.debug(
                "Closed %d progress channel(s) for conversion %s",
                len(channels),
                conversion.id,
            )

    async def close_all(self) -> None:
        """Close every open channel (application shutdown)."""
        for channels in self._channels.values():
            for channel in channels:
                channel.close()
        self._channels.clear()
