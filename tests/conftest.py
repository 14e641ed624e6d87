"""
Pytest Configuration and Shared Fixtures

Provides common fixtures and configuration for all test modules.
"""

from itertools import count
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.cache import CacheConfig, CacheInvalidator, create_cache_coordinator
from src.database import (
    ActivityRepository,
    AnalyticsSnapshotRepository,
    User,
    UserRepository,
    create_db_engine,
    create_session_factory,
    init_db,
)
from src.github import GitHubService
from src.github.models import LanguageStat, RepositoryDTO
from tests.factories import (
    NOW,
    FakeClock,
    FakeDateTimeClock,
    make_contributions,
    make_profile,
    repo_payload,
)


# ============================================================================
# Clocks
# ============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def wall_clock() -> FakeDateTimeClock:
    return FakeDateTimeClock()


# ============================================================================
# Cache
# ============================================================================

@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig(enabled=True, coalesce_misses=False, sweep_enabled=False)


@pytest.fixture
def coordinator(cache_config, clock):
    return create_cache_coordinator(config=cache_config, clock=clock)


@pytest.fixture
def invalidator(coordinator) -> CacheInvalidator:
    return CacheInvalidator(coordinator)


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def user_repo(session_factory) -> UserRepository:
    return UserRepository(session_factory)


@pytest.fixture
def activity_repo(session_factory) -> ActivityRepository:
    return ActivityRepository(session_factory)


@pytest.fixture
def snapshot_repo(session_factory) -> AnalyticsSnapshotRepository:
    return AnalyticsSnapshotRepository(session_factory)


@pytest.fixture
def make_user(user_repo):
    """Store a user with sensible defaults; keyword arguments override columns."""
    github_ids = count(1000)

    def factory(username: str, **fields: Any) -> User:
        languages = fields.pop("languages", None)
        user = User(
            github_id=fields.pop("github_id", next(github_ids)),
            username=username,
            avatar_url=f"https://avatars.example/{username}",
            html_url=f"https://github.com/{username}",
            is_active=fields.pop("is_active", True),
            last_fetched_at=fields.pop("last_fetched_at", NOW),
            total_commits=fields.pop("total_commits", 10),
            **fields,
        )
        if languages is not None:
            user.set_languages(languages)
        return user_repo.save(user)

    return factory


# ============================================================================
# GitHub service double
# ============================================================================

@pytest.fixture
def fake_github():
    """GitHubService double with AsyncMock methods and happy-path defaults."""
    github = MagicMock(spec=GitHubService)
    github.get_profile = AsyncMock(side_effect=lambda username: make_profile(username))
    github.get_contributions = AsyncMock(return_value=make_contributions([1, 2, 0, 3, 4], pull_requests=2))
    github.get_languages = AsyncMock(return_value=[
        LanguageStat(name="Python", bytes=7000, percentage=70.0, color="#3572A5"),
        LanguageStat(name="Go", bytes=3000, percentage=30.0, color="#00ADD8"),
    ])
    github.get_repositories = AsyncMock(return_value=[
        RepositoryDTO.from_api(repo_payload("hello-world", stars=42)),
    ])
    github.get_events = AsyncMock(return_value=[])
    github.search_users = AsyncMock()
    github.get_rate_limit = AsyncMock(return_value={"limit": 5000, "remaining": 4999})
    github.close = AsyncMock()
    return github
