"""
Cache Coordinator

Get-or-compute over per-namespace stores:

    coordinator = create_cache_coordinator()
    profile = await coordinator.get_or_compute(
        CacheNamespace.PROFILE,
        build_key("user_profile", username),
        lambda: client.get_user(username),
    )

The cache is best-effort. Producer errors propagate unchanged and are never
cached; failures of the cache itself are logged and bypassed.

Concurrent misses on the same key each call their own producer unless
coalesce_misses is enabled, in which case followers await the first
caller's in-flight result.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from src.cache.config import (
    CacheConfig,
    CacheNamespace,
    NamespaceRegistry,
    get_cache_config,
)
from src.cache.memory_cache import CacheStore, Clock


logger = logging.getLogger(__name__)

T = TypeVar("T")

Producer = Callable[[], Awaitable[T]]

_MISSING = object()


class CacheCoordinator:
    """
    Owns one CacheStore per registered namespace.

    Created once at process start and passed by reference to every consumer.
    """

    def __init__(
        self,
        registry: NamespaceRegistry,
        config: Optional[CacheConfig] = None,
        clock: Clock = time.monotonic,
    ):
        self.registry = registry
        self.config = config or get_cache_config()
        self._clock = clock
        self._stores: Dict[CacheNamespace, CacheStore] = {
            namespace: CacheStore(
                namespace, registry.config_of(namespace), clock=clock, max_entries=self.config.max_entries
            )
            for namespace in registry.namespaces()
        }
        self._in_flight: Dict[Tuple[CacheNamespace, str], asyncio.Future] = {}

    def store(self, namespace: CacheNamespace) -> CacheStore:
        """Get the store for a namespace. Unregistered namespaces raise."""
        config = self.registry.config_of(namespace)
        namespace = CacheNamespace(namespace)
        store = self._stores.get(namespace)
        if store is None:
            # Registered after construction
            store = CacheStore(namespace, config, clock=self._clock, max_entries=self.config.max_entries)
            self._stores[namespace] = store
        elif store.config != config:
            store.config = config
        return store

    # =========================================================================
    # Get-or-compute
    # =========================================================================

    async def get_or_compute(
        self,
        namespace: CacheNamespace,
        key: str,
        producer: Producer,
        ttl_seconds: Optional[float] = None,
    ) -> Optional[T]:
        """
        Return the cached value for key, or compute, store and return it.

        None results are returned without being stored.
        """
        store = self.store(namespace)

        if not self.config.enabled:
            return await producer()

        try:
            cached = store.get(key, _MISSING)
        except Exception as e:
            logger.error(f"Cache lookup failed for {store.name}:{key}, bypassing cache: {e}")
            return await producer()

        if cached is not _MISSING:
            return cached

        if self.config.coalesce_misses:
            return await self._compute_coalesced(store, key, producer, ttl_seconds)

        return await self._compute_and_store(store, key, producer, ttl_seconds)

    async def _compute_and_store(
        self,
        store: CacheStore,
        key: str,
        producer: Producer,
        ttl_seconds: Optional[float],
    ) -> Optional[T]:
        logger.debug(f"Cache MISS: {store.name}:{key} - executing producer")
        value = await producer()

        if value is None:
            return None

        try:
            store.set(key, value, ttl_seconds)
        except Exception as e:
            logger.error(f"Cache store failed for {store.name}:{key}: {e}")

        return value

    async def _compute_coalesced(
        self,
        store: CacheStore,
        key: str,
        producer: Producer,
        ttl_seconds: Optional[float],
    ) -> Optional[T]:
        flight_key = (CacheNamespace(store.namespace), key)
        pending = self._in_flight.get(flight_key)

        if pending is not None:
            logger.debug(f"Cache MISS: {store.name}:{key} - awaiting in-flight producer")
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                # The leader was cancelled, not this caller
                logger.debug(f"In-flight producer for {store.name}:{key} was cancelled, retrying")
                return await self.get_or_compute(store.namespace, key, producer, ttl_seconds)

        future = asyncio.get_running_loop().create_future()
        # Leader failures with no followers must not warn as unretrieved
        future.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._in_flight[flight_key] = future

        try:
            value = await self._compute_and_store(store, key, producer, ttl_seconds)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(value)
            return value
        finally:
            self._in_flight.pop(flight_key, None)

    # =========================================================================
    # Invalidation
    # =========================================================================

    def invalidate(self, namespace: CacheNamespace, key: str) -> int:
        """Remove one key. Returns count removed."""
        return self.store(namespace).delete(key)

    def invalidate_prefix(self, namespace: CacheNamespace, prefix: str) -> int:
        """Remove every key in namespace starting with prefix."""
        count = self.store(namespace).delete_prefix(prefix)
        if count:
            logger.info(f"Invalidated {count} entries in {CacheNamespace(namespace).value} with prefix {prefix}")
        return count

    def flush(self, namespace: CacheNamespace) -> int:
        return self.store(namespace).flush()

    def flush_all(self) -> int:
        total = sum(store.flush() for store in self._stores.values())
        logger.info(f"All caches flushed ({total} entries)")
        return total

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self):
        """Start background sweepers. Requires a running event loop."""
        if not self.config.sweep_enabled:
            return
        for store in self._stores.values():
            store.start()
        logger.info(f"Cache sweepers started for {len(self._stores)} namespaces")

    async def close(self):
        for store in self._stores.values():
            await store.stop()

    # =========================================================================
    # Statistics and Health
    # =========================================================================

    def health_status(self) -> Dict[str, Any]:
        """Aggregate key counts and hit rates across namespaces."""
        status = {
            "healthy": True,
            "enabled": self.config.enabled,
            "total_keys": 0,
            "total_hits": 0,
            "total_misses": 0,
            "total_errors": 0,
            "hit_rate": 0.0,
            "per_namespace": {},
        }

        try:
            for namespace, store in self._stores.items():
                stats = store.stats()
                status["per_namespace"][namespace.value] = {
                    "keys": stats["keys"],
                    "hits": stats["hits"],
                    "misses": stats["misses"],
                    "errors": stats["errors"],
                    "ttl_seconds": store.config.ttl_seconds,
                    "sweep_interval_seconds": store.config.sweep_interval_seconds,
                }
                status["total_keys"] += stats["keys"]
                status["total_hits"] += stats["hits"]
                status["total_misses"] += stats["misses"]
                status["total_errors"] += stats["errors"]

            lookups = status["total_hits"] + status["total_misses"]
            if lookups:
                status["hit_rate"] = round(status["total_hits"] / lookups * 100, 2)

        except Exception as e:
            logger.error(f"Error getting cache health status: {e}")
            status["healthy"] = False
            status["error"] = str(e)

        return status

    def reset_stats(self):
        for store in self._stores.values():
            store.reset_stats()


def create_cache_coordinator(
    registry: Optional[NamespaceRegistry] = None,
    config: Optional[CacheConfig] = None,
    clock: Clock = time.monotonic,
) -> CacheCoordinator:
    """Build a coordinator with the default namespace configuration."""
    return CacheCoordinator(
        registry or NamespaceRegistry.with_defaults(),
        config=config,
        clock=clock,
    )
