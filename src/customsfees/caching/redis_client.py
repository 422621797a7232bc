"""Redis-backed rule snapshot cache.

Shares cached rule snapshots across worker processes. Keys live under a
namespace prefix so ``invalidate()`` only clears entries this engine owns:

- customs_fees:rules:snapshot → serialized rule list (TTL: settings.cache_ttl)
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Optional

import redis

from customsfees.caching.base import FeeCache

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "customs_fees"


class RedisCache(FeeCache):
    """Redis cache for rule snapshots.

    Connection failures are logged and treated as cache misses so a Redis
    outage degrades to re-reading the rule store.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        default_ttl: int = 300,
        namespace: str = DEFAULT_NAMESPACE,
        client: Any = None,
    ):
        self.url = url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.default_ttl = default_ttl
        self.namespace = namespace
        self._client = client or redis.from_url(
            self.url,
            decode_responses=True,
            socket_keepalive=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Optional[Any]:
        try:
            data = self._client.get(self._key(key))
        except redis.exceptions.RedisError as exc:
            logger.warning("Redis get failed for %s: %s", key, exc)
            return None
        if not data:
            return None
        try:
            return json.loads(data)
        except (json.JSONDecodeError, TypeError):
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        payload = json.dumps(value, sort_keys=True)
        try:
            if ttl > 0:
                self._client.setex(self._key(key), ttl, payload)
            else:
                self._client.set(self._key(key), payload)
        except redis.exceptions.RedisError as exc:
            logger.warning("Redis set failed for %s: %s", key, exc)

    def invalidate(self, key: Optional[str] = None) -> None:
        try:
            if key is not None:
                self._client.delete(self._key(key))
                return
            stale = list(self._client.scan_iter(match=self._key("*")))
            if stale:
                self._client.delete(*stale)
        except redis.exceptions.RedisError as exc:
            logger.warning("Redis invalidate failed: %s", exc)

    def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            return bool(self._client.ping())
        except redis.exceptions.ConnectionError:
            return False
