# Overview: Service-layer in-process TTL cache for hot read paths.

"""
Query cache.

A plain dict of key -> (expires_at, value) stored on the Flask app
(app.extensions["query_cache"]) so each app instance, and each test app, has
its own. Writers invalidate by key or key prefix. The cache is per-process:
with several workers each one holds its own copy and invalidations do not
propagate between them.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable

from flask import current_app


_MISSING = object()


class QueryCache:
    def __init__(self, default_ttl: int = 300, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def init_app(app) -> QueryCache:
    cache = QueryCache(default_ttl=app.config.get("QUERY_CACHE_TTL_SECONDS", 300))
    app.extensions["query_cache"] = cache
    return cache


def get_cache() -> QueryCache:
    return current_app.extensions["query_cache"]


def cached_query(key: str, loader: Callable[[], Any], ttl: int | None = None) -> Any:
    """Return the cached value for key, calling loader() on a miss."""
    cache = get_cache()
    value = cache.get(key, _MISSING)
    if value is _MISSING:
        value = loader()
        cache.set(key, value, ttl)
    return value


def invalidate(*keys: str) -> None:
    cache = get_cache()
    for key in keys:
        cache.delete(key)


def invalidate_prefix(prefix: str) -> None:
    get_cache().delete_prefix(prefix)
