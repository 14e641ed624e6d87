"""
GitHub Analytics Caching Layer

Multi-tier in-process caching for upstream GitHub data and computed statistics:
- Tier 1: Upstream responses (profile, repos, events, rate_limit namespaces)
- Tier 2: Per-user analytics (user_analytics namespace)
- Tier 3: Global aggregations (leaderboard, analytics namespaces)
- Source of truth: the relational store, refreshed on read when stale

Key components:
- NamespaceRegistry: Per-namespace TTL policies
- CacheStore: TTL-bounded table with background expiry sweeping
- CacheCoordinator: get_or_compute over all namespaces
- FreshnessPolicy: Decides when stored users need a live refresh
- CacheInvalidator: Event-driven cache invalidation
- CacheMonitor: Health checks and metrics

Usage:
    coordinator = create_cache_coordinator()
    coordinator.start()

    profile = await coordinator.get_or_compute(
        CacheNamespace.PROFILE,
        build_key("user_profile", username),
        lambda: client.get_user(username),
    )

    # Invalidate on changes
    CacheInvalidator(coordinator).handle_event(CacheEvent.USER_REFRESHED, username=username)
"""

from src.cache.config import (
    CacheConfig,
    CacheNamespace,
    CacheTTL,
    NamespaceConfig,
    NamespaceRegistry,
    UnknownNamespaceError,
    get_cache_config,
)
from src.cache.keys import build_key, hash_params, normalize_key
from src.cache.memory_cache import CacheEntry, CacheStore
from src.cache.coordinator import CacheCoordinator, create_cache_coordinator
from src.cache.freshness import FreshnessPolicy, is_fresh
from src.cache.invalidation import CacheEvent, CacheInvalidator, InvalidationResult
from src.cache.monitoring import CacheMonitor, HealthCheckResult, HealthStatus

__all__ = [
    # Config
    "CacheConfig",
    "CacheNamespace",
    "CacheTTL",
    "NamespaceConfig",
    "NamespaceRegistry",
    "UnknownNamespaceError",
    "get_cache_config",
    # Keys
    "build_key",
    "hash_params",
    "normalize_key",
    # Stores
    "CacheEntry",
    "CacheStore",
    "CacheCoordinator",
    "create_cache_coordinator",
    # Freshness
    "FreshnessPolicy",
    "is_fresh",
    # Invalidation
    "CacheEvent",
    "CacheInvalidator",
    "InvalidationResult",
    # Monitoring
    "CacheMonitor",
    "HealthCheckResult",
    "HealthStatus",
]
