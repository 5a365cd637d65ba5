"""Conversion service: start, inspect and delete conversions.

Hey future me - the HTTP layer talks to THIS, not to the use case directly.
start_conversion() persists the record, then runs the pipeline in a
background asyncio task so POST /api/conversions can answer 202 with the id
immediately. Progress of every run goes to the shared ProgressBroadcaster,
SSE clients subscribe per conversion id.

All lookups are owner-scoped: another user's conversion id behaves exactly
like an unknown id (EntityNotFoundException), we never leak existence.
"""

import asyncio
import logging

from tunebridge.application.services.progress import ProgressBroadcaster, ProgressChannel
from tunebridge.application.use_cases.convert_playlist import (
    ConvertPlaylistRequest,
    ConvertPlaylistUseCase,
)
from tunebridge.domain.entities import Conversion, ConversionStatus
from tunebridge.domain.exceptions import (
    EntityNotFoundException,
    InvalidStateException,
)
from tunebridge.domain.ports import IConversionRepository

logger = logging.getLogger(__name__)


class ConversionService:
    """Application service around ConvertPlaylistUseCase."""

    def __init__(
        self,
        conversion_repository: IConversionRepository,
        use_case: ConvertPlaylistUseCase,
        broadcaster: ProgressBroadcaster,
    ) -> None:
        self._conversions = conversion_repository
        self._use_case = use_case
        self._broadcaster = broadcaster
        self._tasks: dict[str, asyncio.Task[None]] = {}

    async def start_conversion(self, request: ConvertPlaylistRequest) -> Conversion:
        """Persist a new conversion and run it in the background.

        Returns:
            The freshly created record (status processing)
        """
        conversion = await self._use_case.create_record(request)
        assert conversion.id is not None
        task = asyncio.create_task(
            self._run(conversion, request), name=f"conversion-{conversion.id}"
        )
        self._tasks[conversion.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(conversion.id or "", None))
        return conversion

    async def _run(self, conversion: Conversion, request: ConvertPlaylistRequest) -> None:
        # The use case already marked the record failed and logged the cause, a background
        # task has nobody to re-raise to
        try:
            await self._use_case.run(conversion, request)
        except asyncio.CancelledError:
            logger.warning("Conversion %s cancelled at shutdown", conversion.id)
            raise
        except Exception as e:
            logger.info("Conversion %s ended with failure: %s", conversion.id, e)

    async def get_conversion(self, user_id: str, conversion_id: str) -> Conversion:
        """Get one of the user's conversions.

        Raises:
            EntityNotFoundException: If it doesn't exist or belongs to someone else
        """
        conversion = await self._conversions.get(conversion_id)
        if conversion is None or conversion.user_id != user_id:
            raise EntityNotFoundException("Conversion", conversion_id)
        return conversion

    async def list_conversions(self, user_id: str) -> list[Conversion]:
        """Conversion history of the user, newest first."""
        return await self._conversions.list_by_user(user_id)

    async def delete_conversion(self, user_id: str, conversion_id: str) -> None:
        """Delete a finished conversion record (the YouTube playlist stays).

        Raises:
            EntityNotFoundException: If it doesn't exist or belongs to someone else
            InvalidStateException: If the conversion is still processing
        """
        conversion = await self.get_conversion(user_id, conversion_id)
        if conversion.status == ConversionStatus.PROCESSING:
            raise InvalidStateException(
                f"Conversion {conversion_id} is still processing and cannot be deleted"
            )
        await self._conversions.delete(conversion_id)
        logger.info("Deleted conversion %s for user %s", conversion_id, user_id)

    async def subscribe(self, user_id: str, conversion_id: str) -> ProgressChannel:
        """Open a progress channel for one of the user's conversions.

        A conversion that already finished gets a channel that yields just the
        final record, so late subscribers never hang.
        """
        # Register before reading: a run finishing during the read then still
        # reaches the channel instead of firing into an empty subscriber set
        channel = self._broadcaster.subscribe(conversion_id)
        try:
            conversion = await self.get_conversion(user_id, conversion_id)
        except Exception:
            self._broadcaster.unsubscribe(channel)
            raise
        if conversion.is_finished():
            self._broadcaster.unsubscribe(channel)
            channel = ProgressChannel(conversion_id)
            await channel.on_finished(conversion)
        return channel

    def unsubscribe(self, channel: ProgressChannel) -> None:
        self._broadcaster.unsubscribe(channel)

    def is_running(self, conversion_id: str) -> bool:
        task = self._tasks.get(conversion_id)
        return task is not None and not task.done()

    async def wait_for(self, conversion_id: str) -> None:
        """Wait for a background run to finish (no-op if it isn't running)."""
        task = self._tasks.get(conversion_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel running conversions and close progress channels."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d running conversion(s)", len(tasks))
        await self._broadcaster.close_all()
