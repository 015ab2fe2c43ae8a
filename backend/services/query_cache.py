"""Thread-safe TTL cache for retrieval results."""
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _CacheEntry(Generic[T]):
    value: T
    expires_at: float


class QueryCache(Generic[T]):
    """In-memory cache with a per-entry time-to-live and a size cap."""

    def __init__(
        self,
        default_ttl: float = 300.0,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            default_ttl: Seconds an entry lives when set() gets no ttl
            max_size: Entry count above which the oldest entry is dropped
            clock: Monotonic time source (injectable for tests)
        """
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[Hashable, _CacheEntry[T]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Optional[T]:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(self, key: Hashable, value: T, ttl: Optional[float] = None) -> None:
        """Store a value; concurrent writers to one key are last-writer-wins."""
        expires_at = self._clock() + (ttl if ttl is not None else self.default_ttl)
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_size:
                oldest, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted oldest cache entry: {oldest}")
            self._entries[key] = _CacheEntry(value=value, expires_at=expires_at)

    def delete(self, key: Hashable) -> bool:
        """Remove one entry."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Remove all entries and reset statistics."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> Dict[str, Any]:
        """Get hit/miss statistics."""
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._entries),
                "hit_rate": self._hits / lookups if lookups else 0.0,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
