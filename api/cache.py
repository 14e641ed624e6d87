"""
Cache Management API

Provides endpoints for cache monitoring and manual operations.

Endpoints:
- Health check for monitoring/alerting
- Statistics and metrics history for dashboard insights
- Manual flush and per-user invalidation for debugging
- GitHub rate limit status
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from api.dependencies import ServiceContainer, envelope, get_container, valid_username
from src.cache import CacheEvent, CacheNamespace, InvalidationResult
from src.services import BadRequestError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cache", tags=["Cache Management"])


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class InvalidationResponse(BaseModel):
    """Cache invalidation response."""
    success: bool
    event: str
    keys_invalidated: int
    duration_ms: float
    errors: List[str] = []


class MetricsSample(BaseModel):
    """One collected metrics sample."""
    timestamp: datetime
    total_keys: int
    hits: int
    misses: int
    hit_rate: float
    errors: int
    error_rate: float
    per_namespace: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


def _invalidation_response(result: InvalidationResult) -> InvalidationResponse:
    return InvalidationResponse(
        success=result.success,
        event=result.event.value,
        keys_invalidated=result.keys_invalidated,
        duration_ms=round(result.duration_ms, 3),
        errors=result.errors,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/health")
def cache_health_check(container: ServiceContainer = Depends(get_container)):
    """
    Check cache health.

    Status is degraded on a low hit rate or elevated error rate and
    unhealthy when a namespace store is down.
    """
    return envelope(container.monitor.health_check().to_dict())


@router.get("/stats")
def get_cache_stats(container: ServiceContainer = Depends(get_container)):
    """
    Get current cache statistics per namespace.

    Note: Stats are reset on application restart.
    """
    stats = container.coordinator.health_status()
    stats["hit_rate_trend"] = container.monitor.hit_rate_trend()
    return envelope(stats)


@router.get("/metrics/history")
def get_metrics_history(
    since: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=1000),
    container: ServiceContainer = Depends(get_container),
):
    if since is not None and since.tzinfo is not None:
        since = since.astimezone(timezone.utc).replace(tzinfo=None)
    history = container.monitor.get_metrics_history(since=since, limit=limit)
    return envelope([MetricsSample(**vars(m)).model_dump(mode="json") for m in history])


@router.post("/flush/{namespace}")
def flush_namespace(namespace: str, container: ServiceContainer = Depends(get_container)):
    """Drop every entry in one namespace."""
    try:
        target = CacheNamespace(namespace)
    except ValueError:
        allowed = ", ".join(ns.value for ns in CacheNamespace)
        raise BadRequestError(f"Unknown cache namespace '{namespace}'. Allowed: {allowed}") from None

    result = container.invalidator.handle_event(CacheEvent.MANUAL_FLUSH_NAMESPACE, namespace=target)
    logger.info(f"Manual flush of {target.value}: {result.keys_invalidated} entries")
    return envelope(_invalidation_response(result).model_dump())


@router.post("/flush")
def flush_all(container: ServiceContainer = Depends(get_container)):
    """
    Drop ALL cached data.

    CAUTION: performance degrades until caches are repopulated.
    """
    result = container.invalidator.handle_event(CacheEvent.MANUAL_FLUSH_ALL)
    logger.info(f"Manual flush of all namespaces: {result.keys_invalidated} entries")
    return envelope(_invalidation_response(result).model_dump())


@router.post("/invalidate/user/{username}")
def invalidate_user(
    username: str = Depends(valid_username),
    container: ServiceContainer = Depends(get_container),
):
    """Drop every per-user entry (profile, repositories, events, analytics)."""
    result = container.invalidator.handle_event(CacheEvent.USER_UPDATED, username=username)
    return envelope(_invalidation_response(result).model_dump())


@router.get("/rate-limit")
async def get_rate_limit(container: ServiceContainer = Depends(get_container)):
    """Remaining GitHub API quota, cached briefly."""
    return envelope(await container.github.get_rate_limit())
