"""Persistence layer: database engine, ORM models and repositories."""

from tunebridge.infrastructure.persistence.database import Database
from tunebridge.infrastructure.persistence.repositories import (
    ConversionRepository,
    ServiceTokenRepository,
)

__all__ = [
    "ConversionRepository",
    "Database",
    "ServiceTokenRepository",
]
