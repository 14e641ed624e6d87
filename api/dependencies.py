"""
Shared API wiring: the service container stored on app.state, request
dependencies, and the success envelope every endpoint returns.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import Path, Request

from src.cache import (
    CacheCoordinator,
    CacheInvalidator,
    CacheMonitor,
    FreshnessPolicy,
    create_cache_coordinator,
)
from src.database import (
    ActivityRepository,
    AnalyticsSnapshotRepository,
    SessionFactory,
    UserRepository,
    get_session_factory,
)
from src.github import GitHubService, create_github_service
from src.services import AnalyticsService, BadRequestError, LeaderboardService, UserService
from src.utils.config import Settings, get_settings
from src.utils.helpers import is_valid_github_username, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Process-wide singletons created at startup."""
    coordinator: CacheCoordinator
    github: GitHubService
    users: UserService
    leaderboard: LeaderboardService
    analytics: AnalyticsService
    invalidator: CacheInvalidator
    monitor: CacheMonitor
    session_factory: SessionFactory


def build_container(
    settings: Optional[Settings] = None,
    session_factory: Optional[SessionFactory] = None,
    coordinator: Optional[CacheCoordinator] = None,
    github: Optional[GitHubService] = None,
    transport: Optional[Any] = None,
    clock: Optional[Callable] = None,
) -> ServiceContainer:
    """Wire repositories, cache and services together."""
    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()
    coordinator = coordinator or create_cache_coordinator()
    github = github or create_github_service(coordinator, settings=settings, transport=transport)
    clock = clock or utcnow

    user_repo = UserRepository(session_factory)
    activity_repo = ActivityRepository(session_factory)
    snapshot_repo = AnalyticsSnapshotRepository(session_factory)
    invalidator = CacheInvalidator(coordinator)
    freshness = FreshnessPolicy(
        profile_threshold_seconds=settings.USER_REFRESH_THRESHOLD_SECONDS,
        analytics_threshold_seconds=settings.ANALYTICS_RECALC_THRESHOLD_SECONDS,
    )

    return ServiceContainer(
        coordinator=coordinator,
        github=github,
        users=UserService(
            github,
            user_repo,
            activity_repo,
            snapshot_repo,
            invalidator,
            freshness=freshness,
            clock=clock,
        ),
        leaderboard=LeaderboardService(user_repo, coordinator),
        analytics=AnalyticsService(
            user_repo,
            activity_repo,
            coordinator,
            clock=clock,
            max_compare_users=settings.MAX_COMPARE_USERS,
        ),
        invalidator=invalidator,
        monitor=CacheMonitor(coordinator),
        session_factory=session_factory,
    )


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_user_service(request: Request) -> UserService:
    return get_container(request).users


def get_leaderboard_service(request: Request) -> LeaderboardService:
    return get_container(request).leaderboard


def get_analytics_service(request: Request) -> AnalyticsService:
    return get_container(request).analytics


def valid_username(username: str = Path(..., description="GitHub username")) -> str:
    if not is_valid_github_username(username):
        raise BadRequestError(f"Invalid GitHub username: '{username}'")
    return username


def envelope(data: Any, **extra: Any) -> dict:
    """Standard success response body."""
    body = {"success": True, "data": data}
    body.update(extra)
    body["timestamp"] = utcnow().isoformat()
    return body
