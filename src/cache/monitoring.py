"""
Cache Monitoring

Health checks and metrics collection over the cache coordinator.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from src.cache.config import CacheConfig, get_cache_config
from src.cache.coordinator import CacheCoordinator
from src.utils.helpers import utcnow


logger = logging.getLogger(__name__)

# Below this many lookups the hit rate is too noisy to alert on
MIN_LOOKUPS_FOR_HIT_RATE = 100


class HealthStatus(Enum):
    """Health check status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class CacheMetrics:
    """Point-in-time cache metrics."""
    timestamp: datetime
    total_keys: int
    hits: int
    misses: int
    hit_rate: float
    errors: int
    error_rate: float
    per_namespace: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class HealthCheckResult:
    """Result of a health check."""
    status: HealthStatus
    checks: Dict[str, bool]
    issues: List[Dict[str, Any]]
    metrics: Optional[CacheMetrics] = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "checks": self.checks,
            "issues": self.issues,
            "metrics": {
                "total_keys": self.metrics.total_keys,
                "hits": self.metrics.hits,
                "misses": self.metrics.misses,
                "hit_rate": self.metrics.hit_rate,
                "errors": self.metrics.errors,
                "error_rate": self.metrics.error_rate,
                "per_namespace": self.metrics.per_namespace,
            } if self.metrics else None,
            "timestamp": self.timestamp.isoformat(),
        }


class CacheMonitor:
    """
    Monitors cache health.

    Provides:
    - Health checks (store health, hit rate, error rate)
    - A bounded metrics history
    - Hit rate trend over the last hour
    """

    def __init__(
        self,
        coordinator: CacheCoordinator,
        config: Optional[CacheConfig] = None,
        max_history: int = 1000,
    ):
        self._coordinator = coordinator
        self._config = config or get_cache_config()
        self._metrics_history: List[CacheMetrics] = []
        self._max_history = max_history

    def collect_metrics(self) -> CacheMetrics:
        status = self._coordinator.health_status()
        lookups = status["total_hits"] + status["total_misses"]
        error_rate = status["total_errors"] / max(1, lookups + status["total_errors"])

        metrics = CacheMetrics(
            timestamp=utcnow(),
            total_keys=status["total_keys"],
            hits=status["total_hits"],
            misses=status["total_misses"],
            hit_rate=status["hit_rate"] / 100,
            errors=status["total_errors"],
            error_rate=round(error_rate, 4),
            per_namespace=status["per_namespace"],
        )

        self._metrics_history.append(metrics)
        if len(self._metrics_history) > self._max_history:
            self._metrics_history = self._metrics_history[-self._max_history:]

        return metrics

    def health_check(self) -> HealthCheckResult:
        checks: Dict[str, bool] = {}
        issues: List[Dict[str, Any]] = []

        try:
            status = self._coordinator.health_status()
            checks["stores"] = status["healthy"]
            if not status["healthy"]:
                issues.append({
                    "type": "stores",
                    "severity": "critical",
                    "message": f"Cache stores unhealthy: {status.get('error', 'unknown error')}",
                    "action": "Requests are bypassing the cache; check application logs",
                })

            metrics = self.collect_metrics()

            lookups = metrics.hits + metrics.misses
            checks["hit_rate"] = (
                lookups < MIN_LOOKUPS_FOR_HIT_RATE or metrics.hit_rate >= self._config.min_hit_rate
            )
            if not checks["hit_rate"]:
                issues.append({
                    "type": "hit_rate",
                    "severity": "warning",
                    "message": f"Low cache hit rate: {metrics.hit_rate * 100:.1f}%",
                    "threshold": self._config.min_hit_rate * 100,
                    "action": "Review namespace TTLs and key derivation",
                })

            checks["error_rate"] = metrics.error_rate <= self._config.max_error_rate
            if not checks["error_rate"]:
                issues.append({
                    "type": "error_rate",
                    "severity": "warning",
                    "message": f"Elevated cache error rate: {metrics.error_rate * 100:.1f}%",
                    "threshold": self._config.max_error_rate * 100,
                    "action": "Check application logs for cache errors",
                })

            if not checks["stores"]:
                health = HealthStatus.UNHEALTHY
            elif not all(checks.values()):
                health = HealthStatus.DEGRADED
            else:
                health = HealthStatus.HEALTHY

        except Exception as e:
            logger.error(f"Health check error: {e}")
            health = HealthStatus.UNHEALTHY
            checks["stores"] = False
            issues.append({
                "type": "error",
                "severity": "critical",
                "message": str(e),
                "action": "Check cache infrastructure",
            })
            metrics = None

        return HealthCheckResult(
            status=health,
            checks=checks,
            issues=issues,
            metrics=metrics,
        )

    def get_metrics_history(
        self,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[CacheMetrics]:
        history = self._metrics_history
        if since:
            history = [m for m in history if m.timestamp >= since]
        return history[-limit:]

    def hit_rate_trend(self) -> str:
        """'improving', 'degrading' or 'stable' over the last hour of samples."""
        recent = self.get_metrics_history(since=utcnow() - timedelta(hours=1), limit=60)
        if len(recent) < 10:
            return "stable"

        first_half = recent[:len(recent) // 2]
        second_half = recent[len(recent) // 2:]
        first_hit_rate = sum(m.hit_rate for m in first_half) / len(first_half)
        second_hit_rate = sum(m.hit_rate for m in second_half) / len(second_half)

        if second_hit_rate > first_hit_rate + 0.05:
            return "improving"
        if second_hit_rate < first_hit_rate - 0.05:
            return "degrading"
        return "stable"
