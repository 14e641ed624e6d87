"""
Cache Configuration

Centralized configuration for the in-process caching layer.

Each logical namespace gets its own TTL and sweep interval. Volatile upstream
data (events) gets a short TTL, expensive aggregations (analytics,
leaderboard) get long TTLs to amortize their cost.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Dict


class CacheNamespace(str, Enum):
    """Logical partitions of the cache."""
    PROFILE = "profile"
    REPOS = "repos"
    EVENTS = "events"
    USER_ANALYTICS = "user_analytics"
    LEADERBOARD = "leaderboard"
    ANALYTICS = "analytics"
    RATE_LIMIT = "rate_limit"


class UnknownNamespaceError(LookupError):
    """Raised when a namespace is used before it was registered."""

    def __init__(self, namespace):
        name = namespace.value if isinstance(namespace, CacheNamespace) else namespace
        super().__init__(f"Cache namespace '{name}' is not registered")
        self.namespace = namespace


@dataclass(frozen=True)
class NamespaceConfig:
    """TTL policy for one namespace."""
    ttl_seconds: int
    sweep_interval_seconds: int


DEFAULT_NAMESPACE_CONFIGS: Dict[CacheNamespace, NamespaceConfig] = {
    CacheNamespace.PROFILE: NamespaceConfig(ttl_seconds=5 * 60, sweep_interval_seconds=60),
    CacheNamespace.REPOS: NamespaceConfig(ttl_seconds=10 * 60, sweep_interval_seconds=120),
    CacheNamespace.EVENTS: NamespaceConfig(ttl_seconds=2 * 60, sweep_interval_seconds=30),
    CacheNamespace.USER_ANALYTICS: NamespaceConfig(ttl_seconds=10 * 60, sweep_interval_seconds=120),
    CacheNamespace.LEADERBOARD: NamespaceConfig(ttl_seconds=15 * 60, sweep_interval_seconds=180),
    CacheNamespace.ANALYTICS: NamespaceConfig(ttl_seconds=30 * 60, sweep_interval_seconds=300),
    CacheNamespace.RATE_LIMIT: NamespaceConfig(ttl_seconds=60 * 60, sweep_interval_seconds=600),
}


class NamespaceRegistry:
    """
    Maps each namespace to its TTL policy.

    Registration happens at process startup. Re-registering a namespace
    replaces its configuration.
    """

    def __init__(self):
        self._configs: Dict[CacheNamespace, NamespaceConfig] = {}

    def register(
        self,
        namespace: CacheNamespace,
        ttl_seconds: int,
        sweep_interval_seconds: int,
    ) -> NamespaceConfig:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        if sweep_interval_seconds <= 0:
            raise ValueError(
                f"sweep_interval_seconds must be positive, got {sweep_interval_seconds}"
            )

        config = NamespaceConfig(
            ttl_seconds=ttl_seconds,
            sweep_interval_seconds=sweep_interval_seconds,
        )
        self._configs[CacheNamespace(namespace)] = config
        return config

    def config_of(self, namespace: CacheNamespace) -> NamespaceConfig:
        try:
            return self._configs[CacheNamespace(namespace)]
        except (KeyError, ValueError):
            raise UnknownNamespaceError(namespace) from None

    def namespaces(self):
        return list(self._configs.keys())

    @classmethod
    def with_defaults(cls) -> "NamespaceRegistry":
        """Registry populated with the fixed startup configuration."""
        registry = cls()
        for namespace, config in DEFAULT_NAMESPACE_CONFIGS.items():
            registry.register(
                namespace,
                config.ttl_seconds,
                config.sweep_interval_seconds,
            )
        return registry


@dataclass(frozen=True)
class CacheTTL:
    """
    Per-endpoint TTL overrides, in seconds.

    Endpoints that are more expensive than their namespace default (or
    cheaper to recompute) store their results with an explicit TTL.
    """

    # Upstream GitHub data
    CONTRIBUTIONS: int = 10 * 60
    LANGUAGES: int = 30 * 60
    RATE_LIMIT_STATUS: int = 60

    # Leaderboards
    LEADERBOARD_PAGE: int = 15 * 60
    LEADERBOARD_STATS: int = 30 * 60
    TOP_CONTRIBUTORS: int = 20 * 60
    TOP_REPOSITORIES: int = 25 * 60

    # Analytics
    GLOBAL_ANALYTICS: int = 20 * 60
    USER_ANALYTICS: int = 15 * 60
    TRENDS: int = 25 * 60
    USER_COMPARISON: int = 10 * 60


@dataclass
class CacheConfig:
    """
    Main cache configuration.

    Settings can be overridden via environment variables:
    - CACHE_ENABLED: Enable/disable caching globally
    - CACHE_COALESCE_MISSES: Collapse concurrent misses on one key
    - CACHE_SWEEP_ENABLED: Run background expiry sweepers
    - CACHE_MAX_ENTRIES: Capacity of each namespace store
    """

    enabled: bool = field(default_factory=lambda: os.getenv(
        "CACHE_ENABLED",
        "true"
    ).lower() == "true")

    # Off by default: concurrent misses may each call the producer
    coalesce_misses: bool = field(default_factory=lambda: os.getenv(
        "CACHE_COALESCE_MISSES",
        "false"
    ).lower() == "true")

    # Start background sweepers with the coordinator
    sweep_enabled: bool = field(default_factory=lambda: os.getenv(
        "CACHE_SWEEP_ENABLED",
        "true"
    ).lower() == "true")

    # Per-namespace capacity; least recently used entries are evicted beyond it
    max_entries: int = field(default_factory=lambda: int(os.getenv("CACHE_MAX_ENTRIES", "10000")))

    # Health thresholds
    min_hit_rate: float = 0.5
    max_error_rate: float = 0.05


@lru_cache(maxsize=1)
def get_cache_config() -> CacheConfig:
    """Get singleton cache configuration."""
    return CacheConfig()
