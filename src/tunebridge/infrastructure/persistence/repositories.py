"""SQLAlchemy repository implementations."""

import uuid
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tunebridge.domain.entities import Conversion, Platform, ServiceCredentials
from tunebridge.domain.exceptions import EntityNotFoundException, ValidationException
from tunebridge.domain.ports import IConversionRepository, ICredentialRepository

from .models import ConversionModel, ServiceTokenModel, ensure_utc_aware

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


# Hey future me, these repositories take a SESSION FACTORY (Database.session_scope), not a
# session. Every call opens its own short transaction and commits before returning, so a
# progress update is durable the moment update() returns - which is what lets observers
# re-read the record after a progress event.
class ConversionRepository(IConversionRepository):
    """SQLAlchemy implementation of the Conversion repository."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def add(self, conversion: Conversion) -> Conversion:
        """Insert a conversion, assigning a UUID when it has no id yet."""
        if conversion.id is None:
            conversion.id = str(uuid.uuid4())
        async with self._session_factory() as session:
            session.add(
                ConversionModel(id=conversion.id, **self._column_values(conversion))
            )
        return conversion

    async def update(self, conversion: Conversion) -> None:
        """Update an existing conversion.

        Raises:
            EntityNotFoundException: If the conversion doesn't exist (e.g. deleted)
        """
        if conversion.id is None:
            raise ValidationException("Cannot update a conversion without an id")
        async with self._session_factory() as session:
            model = await session.get(ConversionModel, conversion.id)
            if model is None:
                raise EntityNotFoundException("Conversion", conversion.id)
            for column, value in self._column_values(conversion).items():
                setattr(model, column, value)

    async def get(self, conversion_id: str) -> Conversion | None:
        """Get a conversion by id."""
        async with self._session_factory() as session:
            model = await session.get(ConversionModel, conversion_id)
            return self._to_entity(model) if model else None

    async def list_by_user(self, user_id: str) -> list[Conversion]:
        """Conversion history of a user, newest first."""
        stmt = (
            select(ConversionModel)
            .where(ConversionModel.user_id == user_id)
            .order_by(ConversionModel.created_at.desc(), ConversionModel.id.desc())
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [self._to_entity(model) for model in result.scalars().all()]

    async def delete(self, conversion_id: str) -> None:
        """Delete a conversion.

        Raises:
            EntityNotFoundException: If the conversion doesn't exist
        """
        stmt = delete(ConversionModel).where(ConversionModel.id == conversion_id)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:  # type: ignore[attr-defined]
                raise EntityNotFoundException("Conversion", conversion_id)

    @staticmethod
    def _column_values(conversion: Conversion) -> dict[str, object]:
        return {
            "user_id": conversion.user_id,
            "source_playlist_id": conversion.source_playlist_id,
            "source_type": conversion.source_type.value,
            "target_playlist_id": conversion.target_playlist_id,
            "target_type": conversion.target_type.value,
            "status": conversion.status.value,
            "progress": conversion.progress,
            "error": conversion.error,
            "total_tracks": conversion.total_tracks,
            "transferred_count": conversion.transferred_count,
            "skipped_count": conversion.skipped_count,
            "failed_count": conversion.failed_count,
            "created_at": conversion.created_at,
            "updated_at": conversion.updated_at,
        }

    # Rows go through the Conversion constructor, so an unknown status or out-of-range
    # progress in the table raises ValidationException here instead of leaking upward.
    @staticmethod
    def _to_entity(model: ConversionModel) -> Conversion:
        return Conversion(
            id=model.id,
            user_id=model.user_id,
            source_playlist_id=model.source_playlist_id,
            source_type=model.source_type,  # type: ignore[arg-type]
            target_playlist_id=model.target_playlist_id,
            target_type=model.target_type,  # type: ignore[arg-type]
            status=model.status,  # type: ignore[arg-type]
            progress=model.progress,
            error=model.error,
            total_tracks=model.total_tracks,
            transferred_count=model.transferred_count,
            skipped_count=model.skipped_count,
            failed_count=model.failed_count,
            created_at=ensure_utc_aware(model.created_at),
            updated_at=ensure_utc_aware(model.updated_at),
        )


class ServiceTokenRepository(ICredentialRepository):
    """SQLAlchemy implementation of the credential repository (one row per user+platform)."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get(self, user_id: str, platform: Platform) -> ServiceCredentials | None:
        async with self._session_factory() as session:
            model = await self._find(session, user_id, platform)
            return self._to_entity(model) if model else None

    # UPSERT: token refresh and re-connecting both land here
    async def save(self, credentials: ServiceCredentials) -> None:
        """Create or replace the credentials of a user on a platform."""
        now = datetime.now(UTC)
        async with self._session_factory() as session:
            model = await self._find(session, credentials.user_id, credentials.platform)
            if model is None:
                session.add(
                    ServiceTokenModel(
                        user_id=credentials.user_id,
                        platform=credentials.platform.value,
                        access_token=credentials.access_token,
                        refresh_token=credentials.refresh_token,
                        token_expires_at=credentials.expires_at,
                        scopes=credentials.scope,
                        created_at=now,
                        updated_at=now,
                    )
                )
                return

            model.access_token = credentials.access_token
            model.refresh_token = credentials.refresh_token
            model.token_expires_at = credentials.expires_at
            model.scopes = credentials.scope
            model.updated_at = now
            model.last_refreshed_at = now

    async def delete(self, user_id: str, platform: Platform) -> bool:
        stmt = delete(ServiceTokenModel).where(
            ServiceTokenModel.user_id == user_id,
            ServiceTokenModel.platform == platform.value,
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return bool(result.rowcount)  # type: ignore[attr-defined]

    async def list_platforms(self, user_id: str) -> list[Platform]:
        stmt = (
            select(ServiceTokenModel.platform)
            .where(ServiceTokenModel.user_id == user_id)
            .order_by(ServiceTokenModel.platform)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [Platform(value) for value in result.scalars().all()]

    @staticmethod
    async def _find(
        session: AsyncSession, user_id: str, platform: Platform
    ) -> ServiceTokenModel | None:
        stmt = select(ServiceTokenModel).where(
            ServiceTokenModel.user_id == user_id,
            ServiceTokenModel.platform == platform.value,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _to_entity(model: ServiceTokenModel) -> ServiceCredentials:
        try:
            platform = Platform(model.platform)
        except ValueError as e:
            raise ValidationException(
                f"Invalid platform '{model.platform}' for token {model.id}"
            ) from e
        return ServiceCredentials(
            user_id=model.user_id,
            platform=platform,
            access_token=model.access_token,
            refresh_token=model.refresh_token,
            expires_at=(
                ensure_utc_aware(model.token_expires_at)
                if model.token_expires_at
                else None
            ),
            scope=model.scopes,
        )
