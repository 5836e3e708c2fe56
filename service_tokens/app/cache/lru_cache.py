"""
Bounded in-process cache of validated tokens.

Keys are raw token strings, values are the ``ParsedClaims`` produced by a
fully validated parse. Thread-safe implementation for concurrent access.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


@dataclass
class CacheEntry:
    """Cache entry with optional TTL.

    Attributes:
        value: The cached value.
        expires_at: Monotonic deadline, or None when entries never age out.
    """

    value: Any
    expires_at: Optional[float]


class ValidatedTokenCache:
    """Least-recently-used cache with an optional per-entry TTL.

    The TTL bounds how long a token revoked by another process can still be
    served from this cache.
    """

    def __init__(
        self,
        max_size: int = 10_000,
        ttl_seconds: Optional[float] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            max_size: Maximum number of entries before the least recently used is evicted.
            ttl_seconds: Optional lifetime of an entry; None keeps entries until evicted.
            clock: Monotonic time source.
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _is_stale(self, entry: CacheEntry) -> bool:
        return entry.expires_at is not None and self._clock() >= entry.expires_at

    def has(self, token: str) -> bool:
        """Check presence without touching recency."""
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return False
            if self._is_stale(entry):
                del self._entries[token]
                return False
            return True

    def get(self, token: str) -> Optional[Any]:
        """Get a cached value and mark it most recently used.

        Returns:
            Cached value if found and not aged out, None otherwise.
        """
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                self._misses += 1
                return None

            if self._is_stale(entry):
                del self._entries[token]
                self._misses += 1
                return None

            self._entries.move_to_end(token)
            self._hits += 1
            return entry.value

    def set(self, token: str, value: Any) -> None:
        """Store a value, evicting the least recently used entry when full."""
        expires_at = self._clock() + self.ttl_seconds if self.ttl_seconds is not None else None

        with self._lock:
            self._entries[token] = CacheEntry(value=value, expires_at=expires_at)
            self._entries.move_to_end(token)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
                self._evictions += 1

    def delete(self, token: str) -> bool:
        """Remove an entry. Returns True if one was present."""
        with self._lock:
            return self._entries.pop(token, None) is not None

    def clear(self) -> None:
        """Clear entire cache."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, int]:
        """Hit, miss and eviction counters plus current size."""
        with self._lock:
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }
