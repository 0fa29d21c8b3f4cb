"""In-process hot tier for resized renditions.

Sits in front of the disk cache store so that frequently requested
renditions are served without touching the filesystem. Keys are the same
cache keys the disk store uses, so a source change (new mtime) never hits
a stale entry here either.
"""

import threading
import time
import logging
from collections import OrderedDict
from typing import Optional

logger = logging.getLogger(__name__)


class MemoryArtifactCache:
    """LRU cache with TTL for rendition bytes.

    Features:
    - Size-limited (max N entries)
    - Time-limited (TTL in seconds)
    - LRU eviction when full
    - Lazy cleanup on access

    Thread-safe: requests are served from a thread pool, so access is
    guarded by a lock.
    """

    def __init__(self, max_size: int = 64, ttl_seconds: int = 3600):
        """Initialize cache.

        Args:
            max_size: Maximum number of cached renditions (default: 64)
            ttl_seconds: Time to live in seconds (default: 3600 = 1 hour)
        """
        self.max_size = max(1, max_size)
        self.ttl_seconds = ttl_seconds
        self.cache = OrderedDict()  # {cache_key: (bytes, timestamp)}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

        logger.info(
            f"Memory tier initialized: max_size={self.max_size}, "
            f"ttl={ttl_seconds}s ({ttl_seconds/3600:.1f}h)"
        )

    def get(self, key: str) -> Optional[bytes]:
        """Get cached rendition if present and not expired.

        Args:
            key: Cache key digest

        Returns:
            Rendition bytes, or None on miss/expiry
        """
        with self._lock:
            self._cleanup_expired()

            entry = self.cache.get(key)
            if entry is not None:
                data, timestamp = entry
                self.cache.move_to_end(key)
                self._hits += 1
                logger.debug(
                    f"Memory tier HIT: {key[:8]}... (age: {int(time.time() - timestamp)}s)"
                )
                return data

            self._misses += 1
            return None

    def put(self, key: str, data: bytes) -> None:
        """Store a rendition.

        Args:
            key: Cache key digest
            data: Rendition bytes
        """
        with self._lock:
            self.cache[key] = (data, time.time())
            self.cache.move_to_end(key)

            if len(self.cache) > self.max_size:
                oldest_key, _ = self.cache.popitem(last=False)
                logger.debug(f"Memory tier EVICTED (size limit): {oldest_key[:8]}...")

    def _cleanup_expired(self) -> None:
        """Remove all expired entries. Caller holds the lock."""
        now = time.time()
        expired_keys = [
            key for key, (_, timestamp) in self.cache.items()
            if now - timestamp >= self.ttl_seconds
        ]

        for key in expired_keys:
            del self.cache[key]

        if expired_keys:
            logger.debug(
                f"Memory tier cleanup: removed {len(expired_keys)} expired entries "
                f"(size: {len(self.cache)}/{self.max_size})"
            )

    def stats(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0

            return {
                "size": len(self.cache),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate_percent": round(hit_rate, 1)
            }

    def clear(self) -> int:
        """Clear all entries, returning how many were dropped."""
        with self._lock:
            count = len(self.cache)
            self.cache.clear()
        logger.info(f"Memory tier cleared: {count} entries removed")
        return count
