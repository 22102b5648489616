"""
Key-value store holding the most recent successful value per key.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional

from .core import CacheEntry

logger = logging.getLogger("cache.store")


class CacheStore:
    """
    TTL cache with lazy expiration.

    Entries past their TTL are treated as absent by ``get`` but stay in
    memory until overwritten, invalidated, or dropped by ``purge_expired``.
    All access happens on the event loop thread, so there is no locking.
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the store.

        Args:
            default_ttl: TTL in seconds for keys stored without an explicit TTL
            clock: Time source in seconds
        """
        if default_ttl < 0:
            raise ValueError("default_ttl must be >= 0")
        self._entries: Dict[str, CacheEntry] = {}
        self._default_ttl = default_ttl
        self._clock = clock
        self._stats = {
            "hits": 0,
            "misses": 0,
        }

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def now(self) -> float:
        return self._clock()

    def get(self, key: str) -> Optional[Any]:
        """
        Return the cached value if it is still fresh.

        Returns:
            The value, or None when the key is absent or expired
        """
        entry = self._entries.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None

        now = self._clock()
        if not entry.is_fresh(now):
            logger.debug(f"CACHE EXPIRED: {key} [age={entry.age(now):.3f}s]")
            self._stats["misses"] += 1
            return None

        logger.debug(f"CACHE HIT: {key} [age={entry.age(now):.3f}s]")
        self._stats["hits"] += 1
        return entry.value

    def has_fresh(self, key: str) -> bool:
        """Check freshness without touching hit/miss counters."""
        entry = self._entries.get(key)
        return entry is not None and entry.is_fresh(self._clock())

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Raw entry for a key, fresh or not."""
        return self._entries.get(key)

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> CacheEntry:
        """
        Replace the entry for a key.

        Without ttl_seconds the key keeps the TTL of its current entry,
        falling back to the store default.
        """
        if ttl_seconds is None:
            previous = self._entries.get(key)
            ttl_seconds = previous.ttl_seconds if previous else self._default_ttl
        entry = CacheEntry(
            key=key,
            value=value,
            stored_at=self._clock(),
            ttl_seconds=ttl_seconds,
        )
        self._entries[key] = entry
        return entry

    def restore(self, key: str, entry: Optional[CacheEntry]) -> None:
        """Put back a previously captured entry, or drop the key if there was none."""
        if entry is None:
            self._entries.pop(key, None)
        else:
            self._entries[key] = entry

    def invalidate(self, key: Optional[str] = None) -> int:
        """
        Invalidate one entry, or every entry when key is None.

        Returns:
            Number of entries removed
        """
        if key is None:
            count = len(self._entries)
            self._entries.clear()
            logger.info(f"Cleared {count} cache entries")
            return count

        if key in self._entries:
            del self._entries[key]
            logger.info(f"Invalidated cache: {key}")
            return 1
        return 0

    def invalidate_prefix(self, prefix: str) -> int:
        """
        Invalidate all entries whose key starts with prefix.

        Returns:
            Number of entries invalidated
        """
        to_delete = [k for k in self._entries if k.startswith(prefix)]
        for key in to_delete:
            del self._entries[key]
        if to_delete:
            logger.info(f"Invalidated {len(to_delete)} entries matching '{prefix}'")
        return len(to_delete)

    def purge_expired(self) -> int:
        """Drop expired entries to keep memory bounded."""
        now = self._clock()
        expired = [k for k, entry in self._entries.items() if not entry.is_fresh(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired entries")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has_fresh(key)

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics."""
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total * 100) if total > 0 else 0
        return {
            "entries": len(self._entries),
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "hit_rate_percent": round(hit_rate, 1),
        }
