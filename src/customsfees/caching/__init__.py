"""Injectable caching for rule snapshots.

Provides process-local and Redis-backed caches behind one interface.
"""

from __future__ import annotations

from customsfees.caching.base import FeeCache, InMemoryCache, NullCache
from customsfees.caching.redis_client import RedisCache
from customsfees.settings import FeeSettings


def build_cache(settings: FeeSettings) -> FeeCache:
    """Return the cache backend selected by *settings*."""

    if settings.cache_backend == "redis":
        return RedisCache(settings.redis_url, default_ttl=settings.cache_ttl)
    if settings.cache_backend == "none":
        return NullCache()
    return InMemoryCache(default_ttl=settings.cache_ttl)


__all__ = ["FeeCache", "InMemoryCache", "NullCache", "RedisCache", "build_cache"]
