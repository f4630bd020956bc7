"""
In-memory caching utility with TTL support and a size bound
"""

from typing import Any, Optional
from collections import OrderedDict
from datetime import datetime, timezone

from examprep.utils.logger import logger


class CacheEntry:
    """Cache entry with TTL"""

    def __init__(self, value: Any, ttl_seconds: Optional[int] = 300):
        self.value = value
        self.created_at = datetime.now(timezone.utc)
        self.ttl_seconds = ttl_seconds

    @property
    def is_expired(self) -> bool:
        """Check if cache entry is expired (entries without TTL never expire)"""
        if self.ttl_seconds is None:
            return False
        age = (datetime.now(timezone.utc) - self.created_at).total_seconds()
        return age > self.ttl_seconds


class Cache:
    """
    Process-local cache with TTL and a maximum entry count.

    Insertion order is kept, so on overflow the oldest entry is evicted.
    There is no locking: every coroutine runs on the same event loop and
    two racing writers for one key store equivalent values.
    """

    def __init__(self, default_ttl: Optional[int] = 300, max_entries: Optional[int] = None):
        """
        Initialize cache

        Args:
            default_ttl: Default TTL in seconds (None disables expiry)
            max_entries: Maximum number of entries kept (None for unbounded)
        """
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.default_ttl = default_ttl
        self.max_entries = max_entries

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        entry = self._cache.get(key)
        if entry is None:
            return None

        if entry.is_expired:
            del self._cache[key]
            return None

        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Set value in cache, evicting the oldest entries past the size bound"""
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl

        self._cache.pop(key, None)
        self._cache[key] = CacheEntry(value, ttl)

        if self.max_entries is not None:
            while len(self._cache) > self.max_entries:
                self._cache.popitem(last=False)

    def __len__(self) -> int:
        return len(self._cache)

    async def cleanup_expired(self) -> None:
        """Remove expired entries from cache"""
        keys_to_delete = [key for key, entry in self._cache.items() if entry.is_expired]

        for key in keys_to_delete:
            del self._cache[key]

        if keys_to_delete:
            logger.debug(f"Cleaned up {len(keys_to_delete)} expired cache entries")

    def stats(self) -> dict:
        """Get cache statistics"""
        total = len(self._cache)
        expired = sum(1 for entry in self._cache.values() if entry.is_expired)

        return {
            "total_entries": total,
            "expired_entries": expired,
            "active_entries": total - expired,
            "max_entries": self.max_entries
        }
