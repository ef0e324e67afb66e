"""
Key cache for imported issuer public keys.

Entries are keyed by issuerId and tagged with a fingerprint of the JWK they
were built from. A lookup only hits when the caller's current fingerprint
matches, so a rotated issuer key can never be served from a stale entry even
if an explicit invalidation was missed.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Represents a cached key with metadata."""

    value: Any
    fingerprint: str
    cached_at: float
    ttl: int
    hits: int = 0


class KeyCache:
    """
    Thread-safe in-memory LRU cache with TTL support.

    Example:
        >>> cache = KeyCache(max_size=1000, default_ttl=300)
        >>> cache.set("acme", fingerprint, key)
        >>> cache.get("acme", fingerprint) is key
        True
    """

    def __init__(self, max_size: int = 1024, default_ttl: int = 300):
        """
        Initialize the cache.

        Args:
            max_size: Maximum number of entries before LRU eviction.
            default_ttl: Default TTL in seconds.
        """
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0, "invalidations": 0}

    def get(self, key: str, fingerprint: str) -> Optional[Any]:
        """Return the cached value, or None if absent, expired or built from another key."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return None

            if time.time() > entry.cached_at + entry.ttl or entry.fingerprint != fingerprint:
                del self._cache[key]
                self._stats["misses"] += 1
                return None

            self._cache.move_to_end(key)
            entry.hits += 1
            self._stats["hits"] += 1
            return entry.value

    def set(self, key: str, fingerprint: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store value for key. Re-filling an existing entry simply replaces it."""
        with self._lock:
            if key not in self._cache:
                while len(self._cache) >= self._max_size:
                    self._cache.popitem(last=False)
                    self._stats["evictions"] += 1

            self._cache[key] = CacheEntry(
                value=value,
                fingerprint=fingerprint,
                cached_at=time.time(),
                ttl=ttl if ttl is not None else self._default_ttl,
            )
            self._cache.move_to_end(key)

    def invalidate(self, key: str) -> bool:
        """Drop the entry for key. Returns True if one existed."""
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                self._stats["invalidations"] += 1
                logger.debug(f"Invalidated cached key for {key}")
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    @property
    def stats(self) -> Dict[str, int]:
        """Return cache statistics."""
        return {**self._stats, "size": len(self._cache), "max_size": self._max_size}

    @property
    def hit_ratio(self) -> float:
        total = self._stats["hits"] + self._stats["misses"]
        return self._stats["hits"] / total if total > 0 else 0.0
