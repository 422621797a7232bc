"""Cache abstraction used for rule snapshots.

The fee engine never depends on a cache for correctness; a cache only saves
re-reading the rule store between evaluations. Values are JSON-compatible
payloads so every backend can store them verbatim.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple


class FeeCache(ABC):
    """Get/set/invalidate contract shared by all cache backends."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the cached payload for *key* or None on a miss."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store *value* under *key*; *ttl* in seconds overrides the default."""

    @abstractmethod
    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop *key*, or every entry owned by this cache when *key* is None."""


class NullCache(FeeCache):
    """Cache that never stores anything."""

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        return None

    def invalidate(self, key: Optional[str] = None) -> None:
        return None


class InMemoryCache(FeeCache):
    """Thread-safe process-local cache with per-entry expiry."""

    def __init__(self, default_ttl: int = 300, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at and self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        expires_at = self._clock() + ttl if ttl > 0 else 0.0
        with self._lock:
            self._entries[key] = (expires_at, value)

    def invalidate(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
