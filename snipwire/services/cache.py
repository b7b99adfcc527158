"""
CacheStore - Namespaced async cache with TTL and compute-on-miss support.

Features:
- Memory-based cache with LRU eviction
- Entries grouped by namespace (one namespace per module)
- TTL in seconds, "never expire" and "expire now" semantics
- get_for(): return cached value or compute, store and return it
"""

import asyncio
import copy
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

T = TypeVar("T")

Expires = int | timedelta

# Never store, always call the producer
EXPIRE_NOW = 0
# Keep until explicitly deleted
EXPIRE_NEVER = -1


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    data: T
    timestamp: datetime
    expires_at: datetime | None  # None = never expires

    def is_expired(self, now: datetime) -> bool:
        """Check if entry is past its TTL."""
        return self.expires_at is not None and now >= self.expires_at


class CacheStore:
    """
    Namespaced async cache store.

    Keys are addressed by (namespace, name). All entries of a namespace can be
    removed in one call, which is how a module resets its whole cache.

    Usage:
        cache = CacheStore()

        async def produce():
            return await fetch_data()

        data = await cache.get_for("SnipWire", "Orders.abc", 900, produce)
        await cache.delete_for("SnipWire", "Orders.abc")
        await cache.delete_for("SnipWire")
    """

    def __init__(
        self,
        max_size: int = 500,
        clock: Callable[[], datetime] = datetime.now,
        debug: bool = False,
    ):
        self._memory: dict[tuple[str, str], CacheEntry[Any]] = {}
        self._max_size = max_size
        self._clock = clock
        self._debug = debug
        self._lock = asyncio.Lock()
        self._stats = CacheStats()

    async def get(self, namespace: str, name: str) -> Any | None:
        """
        Get value from cache.

        Returns a copy of the cached data if found and not expired, None
        otherwise. Entries are never shared with callers.
        """
        key = (namespace, name)
        async with self._lock:
            entry = self._memory.get(key)
            if entry is None:
                self._stats.misses += 1
                self._log(f"MISS: {namespace}/{name}")
                return None

            if entry.is_expired(self._clock()):
                del self._memory[key]
                self._stats.misses += 1
                self._log(f"EXPIRED: {namespace}/{name}")
                return None

            self._stats.hits += 1
            self._log(f"HIT: {namespace}/{name}")
            return copy.deepcopy(entry.data)

    async def set(self, namespace: str, name: str, data: Any, expires: Expires) -> None:
        """
        Set value in cache.

        Args:
            namespace: Cache namespace (module identity)
            name: Cache name inside the namespace
            data: Data to cache
            expires: Lifetime in seconds (or timedelta), EXPIRE_NEVER or EXPIRE_NOW
        """
        seconds = _to_seconds(expires)
        if seconds == EXPIRE_NOW:
            return

        now = self._clock()
        expires_at = None if seconds == EXPIRE_NEVER else now + timedelta(seconds=seconds)
        entry = CacheEntry(data=copy.deepcopy(data), timestamp=now, expires_at=expires_at)

        key = (namespace, name)
        async with self._lock:
            # LRU eviction if at capacity
            if len(self._memory) >= self._max_size and key not in self._memory:
                self._evict_oldest()

            self._memory[key] = entry
            ttl = "never" if expires_at is None else f"{seconds}s"
            self._log(f"SET: {namespace}/{name} (TTL: {ttl})")

    async def get_for(
        self,
        namespace: str,
        name: str,
        expires: Expires,
        producer: Callable[[], Awaitable[T]],
    ) -> T | None:
        """
        Return the cached value or compute it with producer.

        The producer is awaited on a miss or when the entry is expired. Its
        result is stored under expires unless it is None. The lock is not held
        while the producer runs, so two concurrent misses may both produce;
        the last write wins.
        """
        if _to_seconds(expires) != EXPIRE_NOW:
            cached = await self.get(namespace, name)
            if cached is not None:
                return cached

        data = await producer()
        if data is not None:
            await self.set(namespace, name, data, expires)
        return data

    async def delete_for(self, namespace: str, name: str | None = None) -> int:
        """
        Delete a single key, or every key of the namespace if name is None.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            if name is not None:
                if self._memory.pop((namespace, name), None) is None:
                    return 0
                self._log(f"DELETE: {namespace}/{name}")
                return 1

            keys_to_delete = [k for k in self._memory if k[0] == namespace]
            for key in keys_to_delete:
                del self._memory[key]
            self._log(f"CLEAR: {len(keys_to_delete)} entries removed from {namespace}")
            return len(keys_to_delete)

    async def invalidate_for(self, namespace: str, prefix: str) -> int:
        """
        Invalidate all keys of namespace whose name starts with prefix.

        Returns:
            Number of entries invalidated
        """
        async with self._lock:
            keys_to_delete = [
                k for k in self._memory if k[0] == namespace and k[1].startswith(prefix)
            ]
            for key in keys_to_delete:
                del self._memory[key]

            if keys_to_delete:
                self._log(
                    f"INVALIDATE: {len(keys_to_delete)} entries matching '{prefix}'"
                )

            return len(keys_to_delete)

    async def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        now = self._clock()
        async with self._lock:
            expired_keys = [k for k, v in self._memory.items() if v.is_expired(now)]
            for key in expired_keys:
                del self._memory[key]

            if expired_keys:
                self._log(f"CLEANUP: {len(expired_keys)} expired entries removed")

            return len(expired_keys)

    def _evict_oldest(self) -> None:
        """Evict the oldest entry (LRU). Caller holds the lock."""
        if not self._memory:
            return

        oldest_key = min(
            self._memory.keys(),
            key=lambda k: self._memory[k].timestamp,
        )
        del self._memory[oldest_key]
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key[0]}/{oldest_key[1]}")

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        self._stats.size = len(self._memory)
        self._stats.max_size = self._max_size
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[CacheStore] {message}")


def _to_seconds(expires: Expires) -> int:
    if isinstance(expires, timedelta):
        return int(expires.total_seconds())
    return int(expires)


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
