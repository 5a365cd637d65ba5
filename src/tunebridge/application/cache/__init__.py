"""Caching layer."""

from tunebridge.application.cache.token_cache import CacheEntry, TokenCache

__all__ = ["CacheEntry", "TokenCache"]
