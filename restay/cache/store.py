"""
In-memory response cache with a fixed TTL and lazy expiry.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional

from .core import CacheEntry

logger = logging.getLogger("cache.store")

DEFAULT_TTL_SECONDS = 5 * 60


class ResponseCache:
    """
    Per-key response cache.

    - Every entry lives for the same TTL, configured per instance
    - Expired entries are purged when read, never in the background
    - clear() takes an optional substring pattern for targeted invalidation
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Lifetime of every entry
            clock: Returns the current epoch time in seconds
        """
        self._entries: Dict[str, CacheEntry] = {}
        self._ttl = ttl_seconds
        self._clock = clock

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """
        Return the entry for key if it is still valid.

        An expired entry is evicted and reported as absent.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        if not entry.is_valid(self._clock()):
            del self._entries[key]
            logger.debug(f"CACHE EXPIRED: {key}")
            return None

        return entry

    def get(self, key: str) -> Optional[Any]:
        """Return cached data for key, or None if absent or expired."""
        entry = self.get_entry(key)
        return entry.data if entry is not None else None

    def set(self, key: str, data: Any) -> CacheEntry:
        """Store data under key, replacing any existing entry."""
        now = self._clock()
        entry = CacheEntry(data=data, timestamp=now, expiry=now + self._ttl)
        self._entries[key] = entry
        return entry

    def clear(self, pattern: Optional[str] = None) -> int:
        """
        Remove cache entries.

        Args:
            pattern: Substring to match in cache keys. All entries are
                removed when omitted.

        Returns:
            Number of entries removed
        """
        if pattern is None:
            count = len(self._entries)
            self._entries.clear()
            logger.info(f"Cleared {count} cache entries")
            return count

        to_delete = [k for k in self._entries if pattern in k]
        for key in to_delete:
            del self._entries[key]
        if to_delete:
            logger.info(f"Cleared {len(to_delete)} entries matching '{pattern}'")
        return len(to_delete)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get_entry(key) is not None

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Timestamps of the oldest and newest entries are 0 when the cache is empty.
        """
        entries = list(self._entries.values())
        return {
            "size": len(entries),
            "total_size": sum(entry.approximate_size() for entry in entries),
            "oldest_entry": min((e.timestamp for e in entries), default=0),
            "newest_entry": max((e.timestamp for e in entries), default=0),
        }
