"""
Services Layer

Business logic that orchestrates repository reads, cached GitHub calls
and computed statistics.
"""

from .errors import (
    AppError,
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    from_github_error,
)
from .users import UserService
from .leaderboard import LeaderboardService
from .analytics import AnalyticsService

__all__ = [
    "AppError",
    "BadRequestError",
    "ForbiddenError",
    "NotFoundError",
    "RateLimitedError",
    "from_github_error",
    "UserService",
    "LeaderboardService",
    "AnalyticsService",
]
