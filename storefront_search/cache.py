"""Bounded least-recently-used cache for search results."""

from collections import OrderedDict
from threading import Lock
from typing import Any, Hashable, Optional

from storefront_search.logger import get_logger

logger = get_logger()


class LRUCache:
    """
    Thread-safe fixed-capacity LRU cache.

    Features:
    - get() promotes the entry to most-recently-used
    - set() evicts exactly one least-recently-used entry when full
    - No expiration; entries live until evicted or cleared
    """

    def __init__(self, capacity: int = 1000):
        """
        Initialize LRU cache.

        Args:
            capacity: Maximum number of entries (default: 1000)
        """
        if capacity <= 0:
            raise ValueError("Cache capacity must be positive")
        self.capacity = capacity
        self._cache: "OrderedDict[Hashable, Any]" = OrderedDict()
        self._lock = Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        """
        Get a cached value and mark it most recently used.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found
        """
        with self._lock:
            if key not in self._cache:
                return None
            self._cache.move_to_end(key)
            logger.debug(f"Cache hit for key: {key}")
            return self._cache[key]

    def set(self, key: Hashable, value: Any) -> None:
        """
        Store a value, evicting the least recently used entry when full.

        Args:
            key: Cache key
            value: Value to cache
        """
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            elif len(self._cache) >= self.capacity:
                evicted, _ = self._cache.popitem(last=False)
                logger.debug(f"Evicted least recently used cache entry: {evicted}")
            self._cache[key] = value

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._cache

    def clear(self) -> None:
        """Clear all cached items."""
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            logger.info(f"Cleared search cache ({count} items)")

    def size(self) -> int:
        """Get current cache size."""
        with self._lock:
            return len(self._cache)


def search_cache_key(query: str, category: Optional[str], brand: Optional[str], limit: int) -> tuple:
    """Composite cache key of a search call."""
    return (query, category or '', brand or '', limit)
