"""In-memory result caches for Lapsewatch."""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class CacheEntry(Generic[T]):
    """A cached value and the moment it stops being trustworthy."""
    value: T
    stored_at: float
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class TTLCache(Generic[T]):
    """
    Domain-keyed TTL cache with LRU eviction.

    Keys are normalized (stripped, lowercased) so ``Example.COM`` and
    ``example.com`` share an entry. Freshness is checked on every read;
    stale entries are dropped lazily. Safe for concurrent use from
    coroutines on one event loop.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache.

        Args:
            max_size: Maximum number of entries
            default_ttl: Default time-to-live in seconds
            clock: Time source, returns seconds since the epoch
        """
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def _make_key(key: str) -> str:
        return key.strip().lower()

    async def get(self, key: str) -> T | None:
        """Return the cached value, or None when missing or stale."""
        normalized_key = self._make_key(key)

        async with self._lock:
            entry = self._entries.get(normalized_key)

            if entry is None:
                self._misses += 1
                return None

            if not entry.is_fresh(self._clock()):
                del self._entries[normalized_key]
                self._misses += 1
                return None

            self._entries.move_to_end(normalized_key)
            self._hits += 1
            logger.debug("Cache hit for %s", normalized_key)
            return entry.value

    async def set(self, key: str, value: T, ttl: int | None = None) -> None:
        """Store a value, evicting the least recently used entries if full."""
        normalized_key = self._make_key(key)
        ttl = ttl if ttl is not None else self.default_ttl
        now = self._clock()

        async with self._lock:
            self._entries.pop(normalized_key, None)
            while len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)

            self._entries[normalized_key] = CacheEntry(
                value=value,
                stored_at=now,
                expires_at=now + ttl,
            )

    async def delete(self, key: str) -> bool:
        """Drop an entry. Returns True if one was removed."""
        normalized_key = self._make_key(key)

        async with self._lock:
            return self._entries.pop(normalized_key, None) is not None

    async def clear(self) -> None:
        """Clear all entries and reset statistics."""
        async with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    async def cleanup_expired(self) -> int:
        """Remove every stale entry and return how many were removed."""
        now = self._clock()
        async with self._lock:
            stale = [key for key, entry in self._entries.items() if not entry.is_fresh(now)]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0.0
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "ttl": self.default_ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(hit_rate, 2),
        }


# Last analysis per domain
analysis_cache: TTLCache[Any] = TTLCache(max_size=500, default_ttl=get_settings().cache_ttl)

# WHOIS data changes rarely
whois_cache: TTLCache[Any] = TTLCache(max_size=1000, default_ttl=3600)

# DNS-over-HTTPS answers
dns_cache: TTLCache[Any] = TTLCache(max_size=1000, default_ttl=300)


async def get_cached_or_compute(
    cache: TTLCache[T],
    key: str,
    compute_func: Callable[[], Awaitable[T]],
    ttl: int | None = None,
) -> T:
    """Return the cached value for ``key`` or compute, store and return it."""
    cached = await cache.get(key)
    if cached is not None:
        return cached

    value = await compute_func()
    await cache.set(key, value, ttl)
    return value
