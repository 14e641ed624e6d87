"""
In-Memory Cache Store

One store per namespace, backed by a cachetools TLRUCache:
- per-entry TTL (namespace default or a per-call override)
- passive expiry on read (an expired entry is a miss even before sweeping)
- periodic background sweep of expired entries
- hit/miss statistics
- graceful degradation (errors are logged, never raised to callers)

All mutation happens on the event loop thread, so no locking is needed.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from cachetools import TLRUCache

from src.cache.config import CacheNamespace, NamespaceConfig


logger = logging.getLogger(__name__)

Clock = Callable[[], float]

# Least recently used entries are evicted beyond this size
DEFAULT_MAX_ENTRIES = 10_000

_MISSING = object()


@dataclass
class CacheEntry:
    """A stored value with its expiry metadata."""
    key: str
    value: Any
    stored_at: float
    ttl_seconds: float

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl_seconds


def _entry_expiry(_key: str, entry: CacheEntry, _now: float) -> float:
    return entry.expires_at


@dataclass
class CacheStats:
    """Cache operation statistics."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    expired: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class CacheStore:
    """
    TTL-bounded key/value table for a single namespace.

    Usage:
        store = CacheStore(CacheNamespace.PROFILE, NamespaceConfig(300, 60))
        store.set("user_profile:octocat", profile)
        profile = store.get("user_profile:octocat")
    """

    def __init__(
        self,
        namespace: CacheNamespace,
        config: NamespaceConfig,
        clock: Clock = time.monotonic,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        self.namespace = namespace
        self.config = config
        self._clock = clock
        self._entries = TLRUCache(maxsize=max_entries, ttu=_entry_expiry, timer=clock)
        self._stats = CacheStats()
        self._sweeper: Optional[asyncio.Task] = None

    @property
    def name(self) -> str:
        return CacheNamespace(self.namespace).value

    # =========================================================================
    # Core Operations
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get value from the store.

        Returns default if the key is missing, expired, or the lookup fails.
        """
        try:
            entry = self._entries.get(key, _MISSING)

            if entry is _MISSING:
                self._stats.misses += 1
                expired = self._expire()
                if expired:
                    logger.debug(f"Cache EXPIRED: {self.name} ({expired} entries)")
                logger.debug(f"Cache MISS: {self.name}:{key}")
                return default

            self._stats.hits += 1
            logger.debug(f"Cache HIT: {self.name}:{key}")
            return entry.value

        except Exception as e:
            self._stats.errors += 1
            logger.error(f"Error getting from cache {self.name}:{key}: {e}")
            return default

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> bool:
        """
        Store a value, replacing any existing entry for the key.

        A ttl_seconds of None or 0 uses the namespace default.
        Returns True on success, False on failure.
        """
        try:
            ttl = ttl_seconds or self.config.ttl_seconds
            if ttl < 0:
                raise ValueError(f"negative TTL {ttl}")

            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                stored_at=self._clock(),
                ttl_seconds=ttl,
            )
            self._stats.sets += 1
            logger.debug(f"Cache SET: {self.name}:{key} (ttl={ttl}s)")
            return True

        except Exception as e:
            self._stats.errors += 1
            logger.error(f"Error setting cache {self.name}:{key}: {e}")
            return False

    def delete(self, key: str) -> int:
        """Delete a key. Returns the number of live entries removed (0 or 1)."""
        try:
            if self._entries.pop(key, None) is None:
                return 0
            self._stats.deletes += 1
            logger.debug(f"Cache DEL: {self.name}:{key}")
            return 1
        except Exception as e:
            self._stats.errors += 1
            logger.error(f"Error deleting from cache {self.name}:{key}: {e}")
            return 0

    def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix. Returns count deleted."""
        return sum(self.delete(key) for key in self.keys() if key.startswith(prefix))

    def has(self, key: str) -> bool:
        """Check for a live (non-expired) entry without touching statistics."""
        return key in self._entries

    def keys(self) -> List[str]:
        """Snapshot of all non-expired keys."""
        return [key for key in list(self._entries) if key in self._entries]

    def ttl(self, key: str) -> Optional[float]:
        """Remaining lifetime in seconds, or None if the key is absent."""
        if key not in self._entries:
            return None
        return self._entries[key].expires_at - self._clock()

    def flush(self) -> int:
        """Remove every entry. Returns the number of live entries removed."""
        count = len(self.keys())
        self._entries.clear()
        logger.info(f"Cache flushed: {self.name} ({count} entries)")
        return count

    # =========================================================================
    # Expiry Sweeping
    # =========================================================================

    def _expire(self) -> int:
        before = len(self._entries)
        self._entries.expire()
        removed = before - len(self._entries)
        self._stats.expired += removed
        return removed

    def sweep(self) -> int:
        """Physically remove expired entries. Returns count removed."""
        removed = self._expire()
        if removed:
            logger.debug(f"Swept {removed} expired entries from {self.name}")
        return removed

    async def _sweep_loop(self):
        interval = self.config.sweep_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Cache sweep failed for {self.name}: {e}")

    def start(self):
        """Start the background sweeper on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop(self):
        """Cancel the background sweeper."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    @property
    def is_sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    # =========================================================================
    # Statistics
    # =========================================================================

    def stats(self) -> Dict[str, Any]:
        return {
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "sets": self._stats.sets,
            "deletes": self._stats.deletes,
            "expired": self._stats.expired,
            "errors": self._stats.errors,
            "keys": len(self.keys()),
            "hit_rate": round(self._stats.hit_rate, 4),
        }

    def reset_stats(self):
        self._stats = CacheStats()
