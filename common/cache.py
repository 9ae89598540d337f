"""
Jewelry Back-Office - Cache Service
====================================
Thread-safe in-process TTL cache with explicit, tenant-scoped keys.

Only read-mostly aggregates (stock summary, current-rates board) go
through here. Pricing and allocation always read the database.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger("jewelry.cache")

_MISSING = object()


def cache_key(tenant: str, resource: str, identifier: str = "all") -> str:
    return f"{tenant}:{resource}:{identifier}"


class CacheService:

    def __init__(self, default_ttl: int = 300, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def get_or_set(self, key: str, loader: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Return the cached value or load, store, and return it."""
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = loader()
        self.set(key, value, ttl)
        return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for k in keys:
                del self._entries[k]
        if keys:
            logger.debug(f"Invalidated {len(keys)} cache entries under {prefix}")
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# Singleton
cache_service = CacheService()
