"""Shared fixtures for the unit tests."""

from pathlib import Path

import pytest
from fakes import InMemoryConversionRepository, InMemoryCredentialRepository

from tunebridge.application.cache.token_cache import TokenCache
from tunebridge.config import Settings


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a throwaway SQLite file."""
    return Settings(
        app_env="test",
        database={"url": f"sqlite+aiosqlite:///{tmp_path}/tunebridge-test.db"},
        spotify={"client_id": "spotify-id", "client_secret": "spotify-secret"},
        youtube={"client_id": "google-id", "client_secret": "google-secret"},
    )


@pytest.fixture
def conversion_repository() -> InMemoryConversionRepository:
    return InMemoryConversionRepository()


@pytest.fixture
def credential_repository() -> InMemoryCredentialRepository:
    return InMemoryCredentialRepository()


@pytest.fixture
def token_cache() -> TokenCache:
    return TokenCache()
