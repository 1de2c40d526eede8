"""
In-memory lookup cache with TTL and LRU eviction.

Memoises provider lookups that are expensive and repeat often while decks
are being built: title searches (``source="search"``) and discovery pages
(``source="discover"``). Full movie records are cached durably in the
``cached_movies`` table instead (see cinematch.movies), so this layer only
needs to survive for the lifetime of a worker process.

Key Features:
- Normalized keys (case, whitespace and punctuation insensitive)
- Configurable TTL with default 24h, override via ENV
- LRU eviction when the cache is full
- Hit/miss statistics mirrored into Prometheus
- Lock-protected so enrichment worker threads can share it

Usage Example:
    >>> cache = LookupCache()
    >>> cache.set(("Inception",), [27205], source="search")
    >>> cache.get(("inception",), source="search")
    [27205]
"""

import os
import re
import time
import logging
import threading
from typing import Any, Dict, Optional, Sequence
from collections import OrderedDict
from dataclasses import dataclass

from cinematch.metrics import track_cache_operation

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """
    A single cached value.

    Attributes:
        value: The cached data
        timestamp: When the entry was stored (Unix timestamp)
        ttl: Time-to-live in seconds
        source: Namespace the entry belongs to ("search", "discover")
        hits: Number of times this entry was served
    """
    value: Any
    timestamp: float
    ttl: float
    source: str
    hits: int = 0


@dataclass
class CacheStats:
    total_requests: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    current_size: int = 0
    max_size: int = 0

    @property
    def hit_ratio(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.hits / self.total_requests


def normalize_part(part: Any) -> str:
    """Lowercase, strip punctuation (keeping hyphens/apostrophes) and squash whitespace."""
    if part is None:
        return ""
    text = str(part).lower()
    text = re.sub(r"[^\w\s'-]", "", text)
    return " ".join(text.split())


class LookupCache:
    """
    Thread-safe in-memory cache with TTL and LRU eviction.

    Configuration (via environment variables):
        MOVIE_CACHE_TTL: Default TTL in seconds (default: 86400 = 24 hours)
        MOVIE_CACHE_MAX_SIZE: Maximum number of entries (default: 1000)
        MOVIE_CACHE_ENABLED: Enable/disable caching (default: 1)
    """

    def __init__(
        self,
        ttl: Optional[int] = None,
        max_size: Optional[int] = None,
        enabled: Optional[bool] = None
    ):
        self.ttl = ttl if ttl is not None else int(os.getenv("MOVIE_CACHE_TTL", "86400"))
        self.max_size = max_size if max_size is not None else int(os.getenv("MOVIE_CACHE_MAX_SIZE", "1000"))
        self.enabled = enabled if enabled is not None else (os.getenv("MOVIE_CACHE_ENABLED", "1") != "0")

        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._stats = CacheStats(max_size=self.max_size)
        self._lock = threading.Lock()

        logger.info(
            "LookupCache initialized: enabled=%s, ttl=%ss, max_size=%s",
            self.enabled, self.ttl, self.max_size
        )

    def make_key(self, parts: Sequence[Any], source: str) -> str:
        """
        Build a normalized key from the lookup arguments.

        Examples:
            >>> cache.make_key(("The Matrix",), "search")
            'search:the matrix'
            >>> cache.make_key(("28-12", "any", 1990, None, 2), "discover")
            'discover:28-12:any:1990::2'
        """
        return ":".join([source] + [normalize_part(p) for p in parts])

    def get(self, parts: Sequence[Any], source: str = "default") -> Optional[Any]:
        """Return the cached value for ``parts`` or None when missing or expired."""
        if not self.enabled:
            return None

        key = self.make_key(parts, source)
        with self._lock:
            self._stats.total_requests += 1
            entry = self._cache.get(key)

            if entry is None:
                self._stats.misses += 1
                track_cache_operation(source, hit=False)
                return None

            age = time.time() - entry.timestamp
            if age > entry.ttl:
                del self._cache[key]
                self._stats.misses += 1
                self._stats.evictions += 1
                self._stats.current_size = len(self._cache)
                track_cache_operation(source, hit=False)
                logger.debug("Cache expired: %s (age: %.1fs)", key, age)
                return None

            self._cache.move_to_end(key)
            entry.hits += 1
            self._stats.hits += 1
            track_cache_operation(source, hit=True)
            return entry.value

    def set(self, parts: Sequence[Any], value: Any, source: str = "default",
            ttl: Optional[int] = None) -> None:
        """Store ``value``; evicts the least recently used entry when full."""
        if not self.enabled:
            return

        key = self.make_key(parts, source)
        effective_ttl = ttl if ttl is not None else self.ttl

        with self._lock:
            if key not in self._cache and len(self._cache) >= self.max_size:
                oldest_key = next(iter(self._cache))
                del self._cache[oldest_key]
                self._stats.evictions += 1
                logger.debug("Cache LRU eviction: %s", oldest_key)

            self._cache[key] = CacheEntry(
                value=value,
                timestamp=time.time(),
                ttl=effective_ttl,
                source=source,
            )
            self._cache.move_to_end(key)
            self._stats.current_size = len(self._cache)

    def clear(self, source: Optional[str] = None) -> int:
        """Clear all entries, or only those of one source. Returns the count removed."""
        with self._lock:
            if source is None:
                count = len(self._cache)
                self._cache.clear()
            else:
                stale = [k for k, e in self._cache.items() if e.source == source]
                for k in stale:
                    del self._cache[k]
                count = len(stale)
            self._stats.current_size = len(self._cache)

        logger.info("Cache cleared: %s entries (source=%s)", count, source)
        return count

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "total_requests": self._stats.total_requests,
                "hits": self._stats.hits,
                "misses": self._stats.misses,
                "evictions": self._stats.evictions,
                "current_size": self._stats.current_size,
                "max_size": self._stats.max_size,
                "hit_ratio": self._stats.hit_ratio,
                "enabled": self.enabled
            }


_global_cache: Optional[LookupCache] = None


def get_cache() -> LookupCache:
    """Get or create the process-wide cache instance."""
    global _global_cache
    if _global_cache is None:
        _global_cache = LookupCache()
    return _global_cache


def reset_global_cache():
    """Drop the process-wide cache (used by tests)."""
    global _global_cache
    _global_cache = None
