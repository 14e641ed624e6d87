"""
Cache Invalidation Service

Event-driven cache invalidation with minimal scope.
Principle: Invalidate as narrowly as possible.

- USER_REFRESHED / USER_UPDATED: drop that user's upstream and analytics entries
- USERS_BULK_UPDATED: additionally drop leaderboards and global analytics
- MANUAL_FLUSH_NAMESPACE / MANUAL_FLUSH_ALL: operator-triggered
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from src.cache.config import CacheNamespace
from src.cache.coordinator import CacheCoordinator
from src.cache.keys import build_key


logger = logging.getLogger(__name__)


class CacheEvent(Enum):
    """Events that trigger cache invalidation."""
    USER_REFRESHED = "user_refreshed"
    USER_UPDATED = "user_updated"
    USERS_BULK_UPDATED = "users_bulk_updated"
    MANUAL_FLUSH_NAMESPACE = "manual_flush_namespace"
    MANUAL_FLUSH_ALL = "manual_flush_all"


@dataclass
class InvalidationResult:
    """Result of a cache invalidation operation."""
    event: CacheEvent
    success: bool
    keys_invalidated: int
    duration_ms: float
    errors: List[str] = field(default_factory=list)


# Key prefixes that embed a username directly after the prefix
USER_KEY_PREFIXES = {
    CacheNamespace.PROFILE: ["user_profile", "user_contributions", "user_languages"],
    CacheNamespace.REPOS: ["user_repos"],
    CacheNamespace.EVENTS: ["user_events"],
    CacheNamespace.USER_ANALYTICS: ["user_analytics"],
}


class CacheInvalidator:
    """Translates domain events into targeted coordinator invalidations."""

    def __init__(self, coordinator: CacheCoordinator):
        self._coordinator = coordinator

    def handle_event(
        self,
        event: CacheEvent,
        username: Optional[str] = None,
        namespace: Optional[CacheNamespace] = None,
    ) -> InvalidationResult:
        start = time.monotonic()
        errors: List[str] = []
        count = 0

        try:
            if event in (CacheEvent.USER_REFRESHED, CacheEvent.USER_UPDATED):
                if not username:
                    raise ValueError(f"{event.value} requires a username")
                count = self._invalidate_user(username)

            elif event == CacheEvent.USERS_BULK_UPDATED:
                count = self._coordinator.flush(CacheNamespace.LEADERBOARD)
                count += self._coordinator.flush(CacheNamespace.ANALYTICS)

            elif event == CacheEvent.MANUAL_FLUSH_NAMESPACE:
                if namespace is None:
                    raise ValueError(f"{event.value} requires a namespace")
                count = self._coordinator.flush(namespace)

            elif event == CacheEvent.MANUAL_FLUSH_ALL:
                count = self._coordinator.flush_all()

        except ValueError as e:
            errors.append(str(e))
            logger.warning(f"Invalidation for {event.value} rejected: {e}")

        duration_ms = (time.monotonic() - start) * 1000
        if count:
            logger.info(f"{event.value}: invalidated {count} cache entries in {duration_ms:.1f}ms")

        return InvalidationResult(
            event=event,
            success=not errors,
            keys_invalidated=count,
            duration_ms=duration_ms,
            errors=errors,
        )

    def _invalidate_user(self, username: str) -> int:
        count = 0
        for namespace, prefixes in USER_KEY_PREFIXES.items():
            for prefix in prefixes:
                key_prefix = build_key(prefix, username)
                # Exact key, plus any key with further parts after the username
                count += self._coordinator.invalidate(namespace, key_prefix)
                count += self._coordinator.invalidate_prefix(namespace, key_prefix + ":")
        return count
