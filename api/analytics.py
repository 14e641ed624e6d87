"""
Analytics API

Endpoints:
- GET  /api/analytics/global           - Platform-wide analytics
- GET  /api/analytics/user/{username}  - Analytics for one stored user
- GET  /api/analytics/trends           - Activity trend over time
- POST /api/analytics/compare          - Side-by-side comparison of users
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from api.dependencies import envelope, get_analytics_service, valid_username
from src.database import ActivityMetric, GroupBy
from src.services import AnalyticsService
from src.services.analytics import DEFAULT_COMPARE_METRICS, PeriodMetric

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/analytics", tags=["Analytics"])

PERIOD_PATTERN = r"^\d+[dwmy]$"


class CompareRequest(BaseModel):
    """Users and metrics to compare."""
    usernames: List[str] = Field(..., description="2-10 GitHub usernames")
    period: str = Field(default="30d", pattern=PERIOD_PATTERN)
    metrics: List[PeriodMetric] = Field(
        default_factory=lambda: [PeriodMetric(m) for m in DEFAULT_COMPARE_METRICS]
    )


@router.get("/global")
async def get_global_analytics(
    period: str = Query("30d", pattern=PERIOD_PATTERN),
    include_charts: bool = True,
    service: AnalyticsService = Depends(get_analytics_service),
):
    return envelope(await service.get_global_analytics(period, include_charts=include_charts))


@router.get("/user/{username}")
async def get_user_analytics(
    username: str = Depends(valid_username),
    period: str = Query("30d", pattern=PERIOD_PATTERN),
    include_activity: bool = True,
    include_languages: bool = True,
    include_repos: bool = True,
    service: AnalyticsService = Depends(get_analytics_service),
):
    result = await service.get_user_analytics(
        username,
        period,
        include_activity=include_activity,
        include_languages=include_languages,
        include_repos=include_repos,
    )
    return envelope(result)


@router.get("/trends")
async def get_trends(
    period: str = Query("90d", pattern=PERIOD_PATTERN),
    metric: ActivityMetric = ActivityMetric.COMMITS,
    group_by: GroupBy = GroupBy.DAILY,
    location: Optional[str] = Query(None, max_length=100),
    language: Optional[str] = Query(None, max_length=50),
    service: AnalyticsService = Depends(get_analytics_service),
):
    result = await service.get_trends(
        period, metric=metric.value, group_by=group_by.value, location=location, language=language
    )
    return envelope(result)


@router.post("/compare")
async def compare_users(
    request: CompareRequest,
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Compare 2-10 stored users over a period. Duplicate usernames count once."""
    result = await service.compare_users(
        request.usernames, period=request.period, metrics=[m.value for m in request.metrics]
    )
    return envelope(result)
