"""
Leaderboard API

Endpoints:
- GET /api/leaderboard                       - Ranked users by category
- GET /api/leaderboard/stats                 - Platform overview
- GET /api/leaderboard/contributors          - Top contributors
- GET /api/leaderboard/repositories          - Top repositories across stored users
- GET /api/leaderboard/location/{location}   - Leaderboard within one location
- GET /api/leaderboard/language/{language}   - Leaderboard within one language
- GET /api/leaderboard/user/{username}       - Live rankings of one user
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import envelope, get_leaderboard_service, valid_username
from src.database import RepositorySort
from src.services import LeaderboardService
from src.services.leaderboard import ContributorCategory, LeaderboardCategory

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/leaderboard", tags=["Leaderboard"])

PERIOD_PATTERN = r"^(all_time|yearly|monthly|weekly|daily|\d+[dwmy])$"


@router.get("")
async def get_leaderboard(
    category: LeaderboardCategory = LeaderboardCategory.COMMITS,
    period: str = Query("all_time", pattern=PERIOD_PATTERN),
    location: Optional[str] = Query(None, max_length=100),
    language: Optional[str] = Query(None, max_length=50),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=100),
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    result = await service.get_leaderboard(
        category.value, period=period, location=location, language=language, page=page, limit=limit
    )
    return envelope(result)


@router.get("/stats")
async def get_leaderboard_stats(service: LeaderboardService = Depends(get_leaderboard_service)):
    return envelope(await service.get_stats())


@router.get("/contributors")
async def get_top_contributors(
    category: ContributorCategory = ContributorCategory.COMMITS,
    period: str = Query("all_time", pattern=PERIOD_PATTERN),
    limit: int = Query(50, ge=1, le=100),
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    return envelope(await service.get_top_contributors(category.value, period=period, limit=limit))


@router.get("/repositories")
async def get_top_repositories(
    sort: RepositorySort = RepositorySort.STARS,
    language: Optional[str] = Query(None, max_length=50),
    limit: int = Query(50, ge=1, le=100),
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    return envelope(await service.get_top_repositories(sort.value, language=language, limit=limit))


@router.get("/location/{location}")
async def get_location_leaderboard(
    location: str,
    category: LeaderboardCategory = LeaderboardCategory.COMMITS,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=100),
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    return envelope(await service.get_leaderboard(category.value, location=location, page=page, limit=limit))


@router.get("/language/{language}")
async def get_language_leaderboard(
    language: str,
    category: LeaderboardCategory = LeaderboardCategory.COMMITS,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=100),
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    return envelope(await service.get_leaderboard(category.value, language=language, page=page, limit=limit))


@router.get("/user/{username}")
def get_user_ranking(
    username: str = Depends(valid_username),
    categories: Optional[str] = Query(None, description="Comma-separated categories"),
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    """Rank of one user per category. Computed live, not cached."""
    requested = [c for c in categories.split(",") if c.strip()] if categories else None
    return envelope(service.get_user_ranking(username, requested))
