"""
Users API

Endpoints:
- GET  /api/users                         - List stored users (filters, sort, pagination)
- GET  /api/users/search                  - Search GitHub users, enriched with stored stats
- POST /api/users/bulk-update             - Refresh many users
- GET  /api/users/{username}              - Profile (cold-fetched on first request)
- GET  /api/users/{username}/repositories - Repositories from GitHub
- GET  /api/users/{username}/activity     - Recent public events, categorized
- POST /api/users/{username}/refresh      - Forced refresh from GitHub
- GET  /api/users/{username}/stats        - Profile statistics and rankings
- GET  /api/users/{username}/positions    - Leaderboard positions
- POST /api/users/{username}/streak       - Recalculate contribution streaks
- GET  /api/users/{username}/analytics    - Period analytics snapshot
"""

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from api.dependencies import envelope, get_container, get_user_service, valid_username
from src.database import SortOrder, UserFilter, UserSortField
from src.services import UserService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/users", tags=["Users"])

EVENT_CATEGORIES = {
    "PushEvent": "commits",
    "PullRequestEvent": "pull_requests",
    "IssuesEvent": "issues",
    "ReleaseEvent": "releases",
}


# =============================================================================
# REQUEST MODELS
# =============================================================================

class RefreshRequest(BaseModel):
    """Which optional parts to refetch."""
    include_contributions: bool = True
    include_languages: bool = True


class BulkUpdateRequest(BaseModel):
    """Usernames to refresh in one call."""
    usernames: List[str] = Field(..., min_length=1, max_length=50)
    force_update: bool = False


# =============================================================================
# COLLECTION ENDPOINTS
# =============================================================================

@router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort: UserSortField = Query(UserSortField.TOTAL_COMMITS),
    order: SortOrder = Query(SortOrder.DESC),
    search: Optional[str] = Query(None, max_length=100),
    location: Optional[str] = Query(None, max_length=100),
    language: Optional[str] = Query(None, max_length=50),
    min_commits: Optional[int] = Query(None, ge=0),
    max_commits: Optional[int] = Query(None, ge=0),
    min_followers: Optional[int] = Query(None, ge=0),
    max_followers: Optional[int] = Query(None, ge=0),
    is_verified: Optional[bool] = None,
    service: UserService = Depends(get_user_service),
):
    """List stored users."""
    filters = UserFilter(
        search=search,
        location=location,
        language=language,
        min_commits=min_commits,
        max_commits=max_commits,
        min_followers=min_followers,
        max_followers=max_followers,
        is_verified=is_verified,
    )
    result = service.list_users(filters, sort=sort, order=order, page=page, limit=limit)
    return envelope(result["users"], pagination=result["pagination"], filters=result["filters"])


@router.get("/search")
async def search_users(
    q: str = Query(..., description="Search query"),
    sort: Literal["followers", "repositories", "joined"] = "followers",
    order: Literal["asc", "desc"] = "desc",
    per_page: int = Query(30, ge=1, le=100),
    page: int = Query(1, ge=1),
    service: UserService = Depends(get_user_service),
):
    """Search GitHub users. Not cached."""
    return envelope(await service.search_users(q, sort=sort, order=order, per_page=per_page, page=page))


@router.post("/bulk-update")
async def bulk_update_users(
    request: BulkUpdateRequest,
    service: UserService = Depends(get_user_service),
):
    """Refresh several users; fresh users are skipped unless force_update is set."""
    return envelope(await service.bulk_update_users(request.usernames, force_update=request.force_update))


# =============================================================================
# SINGLE-USER ENDPOINTS
# =============================================================================

@router.get("/{username}")
async def get_user_profile(
    username: str = Depends(valid_username),
    include_repos: bool = False,
    include_activity: bool = False,
    service: UserService = Depends(get_user_service),
):
    """
    Get a user's profile.

    Unknown users are fetched from GitHub synchronously. Stale users are
    returned immediately and refreshed in the background.
    """
    data = await service.get_user_profile(
        username, include_repos=include_repos, include_activity=include_activity
    )
    return envelope(data)


@router.get("/{username}/repositories")
async def get_user_repositories(
    username: str = Depends(valid_username),
    type: Literal["all", "owner", "member"] = "owner",
    sort: Literal["created", "updated", "pushed", "full_name"] = "updated",
    direction: Literal["asc", "desc"] = "desc",
    per_page: int = Query(30, ge=1, le=100),
    page: int = Query(1, ge=1),
    container=Depends(get_container),
):
    repositories = await container.github.get_repositories(
        username, type=type, sort=sort, direction=direction, per_page=per_page, page=page
    )
    return envelope({
        "repositories": [r.to_dict() for r in repositories],
        "total_count": len(repositories),
        "filters": {"type": type, "sort": sort, "direction": direction},
    })


@router.get("/{username}/activity")
async def get_user_activity(
    username: str = Depends(valid_username),
    per_page: int = Query(30, ge=1, le=100),
    page: int = Query(1, ge=1),
    container=Depends(get_container),
):
    events = [e.to_dict() for e in await container.github.get_events(username, per_page=per_page, page=page)]

    categorized = {"commits": [], "pull_requests": [], "issues": [], "releases": [], "other": []}
    for event in events:
        categorized[EVENT_CATEGORIES.get(event["type"], "other")].append(event)

    return envelope({
        "events": events,
        "categorized": categorized,
        "summary": {
            "total_events": len(events),
            **{f"{name}_events": len(items) for name, items in categorized.items()},
        },
    })


@router.post("/{username}/refresh")
async def refresh_user(
    request: Optional[RefreshRequest] = None,
    username: str = Depends(valid_username),
    service: UserService = Depends(get_user_service),
):
    request = request or RefreshRequest()
    user = await service.refresh_user(
        username,
        include_contributions=request.include_contributions,
        include_languages=request.include_languages,
    )
    return envelope(user.to_public_dict(), message="User data refreshed successfully")


@router.get("/{username}/stats")
def get_user_stats(
    username: str = Depends(valid_username),
    service: UserService = Depends(get_user_service),
):
    return envelope(service.get_user_stats(username))


@router.get("/{username}/positions")
def get_leaderboard_positions(
    username: str = Depends(valid_username),
    service: UserService = Depends(get_user_service),
):
    return envelope(service.get_leaderboard_positions(username))


@router.post("/{username}/streak")
def update_contribution_streak(
    username: str = Depends(valid_username),
    service: UserService = Depends(get_user_service),
):
    return envelope(service.update_contribution_streak(username))


@router.get("/{username}/analytics")
async def calculate_user_analytics(
    username: str = Depends(valid_username),
    period: str = Query("30d", pattern=r"^(\d+[dwmy]|daily|weekly|monthly|yearly|all_time)$"),
    service: UserService = Depends(get_user_service),
):
    """Period analytics from public events, recalculated at most every 30 minutes."""
    return envelope(await service.calculate_user_analytics(username, period))
