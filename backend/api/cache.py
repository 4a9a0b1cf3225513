"""
Thread-safe caching utilities for the Memoria API.

Bounded, thread-safe TTLCache registry. Watchlist stats are cached per
watchlist version, so an import makes the old entry unreachable.
"""
import threading
from cachetools import TTLCache

TIER1_STATS_CACHE = "tier1_stats"


class AppCache:
    """Application-wide cache registry. Thread-safe with size and TTL bounds."""

    def __init__(self):
        self._lock = threading.Lock()
        self._caches: dict[str, TTLCache] = {}

    def get_cache(self, name: str, maxsize: int = 128, ttl: int = 600) -> TTLCache:
        """Get or create a named TTLCache."""
        with self._lock:
            if name not in self._caches:
                self._caches[name] = TTLCache(maxsize=maxsize, ttl=ttl)
            return self._caches[name]

    def get(self, cache_name: str, key: str):
        """Value from a named cache, or None if missing/expired."""
        with self._lock:
            cache = self._caches.get(cache_name)
            if cache is None:
                return None
            return cache.get(key)

    def set(self, cache_name: str, key: str, value, maxsize: int = 128, ttl: int = 600):
        cache = self.get_cache(cache_name, maxsize=maxsize, ttl=ttl)
        with self._lock:
            cache[key] = value

    def invalidate(self, cache_name: str, key: str | None = None):
        """Invalidate a specific key or an entire cache."""
        with self._lock:
            cache = self._caches.get(cache_name)
            if cache is None:
                return
            if key is None:
                cache.clear()
            else:
                cache.pop(key, None)

    def clear(self):
        with self._lock:
            for cache in self._caches.values():
                cache.clear()

    def stats(self) -> dict:
        with self._lock:
            return {
                name: {"size": len(cache), "maxsize": cache.maxsize, "ttl": cache.ttl}
                for name, cache in self._caches.items()
            }


# Global cache instance - import this in routers
app_cache = AppCache()
