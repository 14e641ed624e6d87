"""
Analytics Service

Global, per-user, trend and comparison analytics over stored users and
their daily activity. Results are cached through the coordinator:
- global analytics and trends in the analytics namespace
- per-user analytics and comparisons in the user_analytics namespace
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from src.cache.config import CacheNamespace, CacheTTL
from src.cache.coordinator import CacheCoordinator
from src.cache.keys import build_key, hash_params
from src.database.models import ActivityRecord, User
from src.database.repository import (
    ActivityMetric,
    ActivityRepository,
    GroupBy,
    UserFilter,
    UserRepository,
    UserSortField,
)
from src.scoring.activity import overall_performance_score, shannon_diversity, user_performance_scores
from src.services.errors import BadRequestError, NotFoundError
from src.utils.helpers import (
    get_date_range,
    median,
    percentile,
    standard_deviation,
    trend_direction,
    utcnow,
)

logger = logging.getLogger(__name__)

MIN_COMPARE_USERS = 2
MAX_COMPARE_USERS = 10
DAILY_CHART_POINTS = 90
SIMILAR_USERS_SAMPLE = 100
SIGNIFICANT_TREND_PERCENT = 10


class PeriodMetric(str, Enum):
    """Metrics users can be compared on"""
    COMMITS = "commits"
    PULL_REQUESTS = "pull_requests"
    ISSUES = "issues"
    REVIEWS = "reviews"
    ACTIVE_DAYS = "active_days"


DEFAULT_COMPARE_METRICS = [PeriodMetric.COMMITS.value, PeriodMetric.PULL_REQUESTS.value, PeriodMetric.ISSUES.value]

USER_RANKING_FIELDS = {
    "commits": UserSortField.TOTAL_COMMITS,
    "followers": UserSortField.FOLLOWERS,
    "repositories": UserSortField.PUBLIC_REPOS,
    "contributions": UserSortField.TOTAL_CONTRIBUTIONS,
}


def period_statistics(records: List[ActivityRecord]) -> Dict[str, int]:
    stats = {"commits": 0, "pull_requests": 0, "issues": 0, "reviews": 0, "active_days": 0}
    for record in records:
        stats["commits"] += record.commits or 0
        stats["pull_requests"] += record.pull_requests or 0
        stats["issues"] += record.issues or 0
        stats["reviews"] += record.reviews or 0
        if (record.commits or 0) > 0:
            stats["active_days"] += 1
    return stats


def _timeline(records: List[ActivityRecord]) -> List[Dict[str, Any]]:
    timeline = []
    for record in records:
        entry = record.to_dict()
        entry["total"] = (
            entry["commits"] + entry["pull_requests"] + entry["issues"] + entry["reviews"]
        )
        timeline.append(entry)
    return timeline


def _percent_diff(value: float, average: float) -> int:
    return round((value - average) / average * 100) if average > 0 else 0


def _repo_language_distribution(repos: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for repo in repos:
        if repo.get("language"):
            counts[repo["language"]] = counts.get(repo["language"], 0) + 1
    distribution = [
        {"language": lang, "count": count, "percentage": round(count / len(repos) * 100)}
        for lang, count in counts.items()
    ]
    distribution.sort(key=lambda d: d["count"], reverse=True)
    return distribution


def trend_statistics(values: List[float]) -> Dict[str, Any]:
    if not values:
        return {}
    trend = trend_direction(values)
    return {
        "total": sum(values),
        "average": round(sum(values) / len(values)),
        "min": min(values),
        "max": max(values),
        "trend": {
            "direction": trend["direction"],
            "percentage": trend["percentage"],
            "is_significant": abs(trend["percentage"]) > SIGNIFICANT_TREND_PERCENT,
        },
        "volatility": round(standard_deviation(values)),
    }


class AnalyticsService:
    """
    Cached analytics reads.

    Usage:
        service = AnalyticsService(users, activity, coordinator)
        overview = await service.get_global_analytics("30d")
    """

    def __init__(
        self,
        users: UserRepository,
        activity: ActivityRepository,
        coordinator: CacheCoordinator,
        clock: Callable[[], datetime] = utcnow,
        max_compare_users: int = MAX_COMPARE_USERS,
    ):
        self.users = users
        self.activity = activity
        self.coordinator = coordinator
        self._clock = clock
        self.max_compare_users = max_compare_users

    def _period_info(self, start: datetime, end: datetime, period: str) -> Dict[str, Any]:
        return {"start": start.isoformat(), "end": end.isoformat(), "duration": period}

    # =========================================================================
    # Global
    # =========================================================================

    async def get_global_analytics(self, period: str = "30d", include_charts: bool = True) -> Dict[str, Any]:
        async def compute() -> Dict[str, Any]:
            now = self._clock()
            start, end = get_date_range(period, now)
            totals = self.users.aggregate_totals()

            active_users = self.users.count_fetched_between(start)
            previous_start = start - (end - start)
            previous_active = self.users.count_fetched_between(previous_start, start)
            growth = round((active_users - previous_active) / previous_active * 100) if previous_active else 0

            trends = None
            if include_charts:
                daily = self.activity.aggregate_by_period(start, end, GroupBy.DAILY)[:DAILY_CHART_POINTS]
                trends = {
                    "daily": [
                        {
                            "date": day["date"],
                            "commits": day["commits"],
                            "pull_requests": day["pull_requests"],
                            "issues": day["issues"],
                            "active_users": day["active_users"],
                        }
                        for day in daily
                    ]
                }

            logger.info(f"Computed global analytics for period {period}")
            return {
                "overview": {
                    "total_users": totals["total_users"],
                    "active_users": active_users,
                    "new_users": self.users.count_created_between(start, end),
                    "total_commits": totals["total_commits"],
                    "total_repositories": totals["total_repositories"],
                    "total_followers": totals["total_followers"],
                    "total_following": totals["total_following"],
                    "averages": {
                        "commits_per_user": round(totals["avg_commits_per_user"]),
                        "repos_per_user": round(totals["avg_repos_per_user"]),
                        "followers_per_user": round(totals["avg_followers_per_user"]),
                    },
                    "growth": {"active_users_growth": growth, "period": period},
                },
                "distributions": {
                    "languages": [
                        {
                            "name": lang["name"],
                            "user_count": lang["user_count"],
                            "average_usage": round(lang["avg_percentage"]),
                            "total_usage": round(lang["total_percentage"]),
                        }
                        for lang in self.users.language_distribution(limit=15)
                    ],
                    "locations": [
                        {
                            "name": loc["name"],
                            "user_count": loc["user_count"],
                            "average_commits": round(loc["avg_commits"]),
                            "total_commits": loc["total_commits"],
                        }
                        for loc in self.users.location_distribution(limit=20)
                    ],
                },
                "trends": trends,
                "top_performers": [
                    {
                        "rank": i + 1,
                        "username": row["user"].username,
                        "name": row["user"].name,
                        "avatar_url": row["user"].avatar_url,
                        "location": row["user"].location,
                        "primary_language": row["user"].primary_language,
                        "total_commits": row["user"].total_commits or 0,
                        "total_pull_requests": row["user"].total_pull_requests or 0,
                        "total_issues": row["user"].total_issues or 0,
                        "followers": row["user"].followers or 0,
                        "performance_score": round(row["performance_score"]),
                    }
                    for i, row in enumerate(self.users.top_performers(limit=10))
                ],
                "period": period,
                "generated_at": now.isoformat(),
            }

        return await self.coordinator.get_or_compute(
            CacheNamespace.ANALYTICS,
            build_key("global_analytics", hash_params({"period": period}), include_charts),
            compute,
            ttl_seconds=CacheTTL.GLOBAL_ANALYTICS,
        )

    # =========================================================================
    # Per user
    # =========================================================================

    def _user_rankings(self, user: User) -> Dict[str, Dict[str, int]]:
        total = self.users.count_documents(UserFilter())
        rankings = {}
        for name, field in USER_RANKING_FIELDS.items():
            rank = self.users.count_greater_than(field, getattr(user, field.value)) + 1
            rankings[name] = {"rank": rank, "total": total, "percentile": percentile(rank, total)}
        return rankings

    def _similar_user_comparison(self, user: User) -> Optional[Dict[str, Any]]:
        similar = self.users.find_similar(user, limit=SIMILAR_USERS_SAMPLE)
        if not similar:
            return None

        def average(attr: str) -> int:
            return round(sum(getattr(u, attr) or 0 for u in similar) / len(similar))

        comparison = {}
        for name, attr in (("commits", "total_commits"), ("followers", "followers"), ("repositories", "public_repos")):
            avg = average(attr)
            value = getattr(user, attr) or 0
            comparison[name] = {"user": value, "average": avg, "percentage_diff": _percent_diff(value, avg)}

        return {"sample_size": len(similar), "user_vs_average": comparison}

    def _language_analysis(self, user: User) -> Optional[Dict[str, Any]]:
        languages = user.top_languages or []
        if not languages:
            return None
        return {
            "primary": languages[0],
            "distribution": languages[:10],
            "total_languages": len(languages),
            "diversity": shannon_diversity([lang.get("percentage") or 0 for lang in languages], base=2),
        }

    def _repository_analysis(self, user: User) -> Optional[Dict[str, Any]]:
        repos = user.recent_repos or []
        if not repos:
            return None
        top = sorted(repos, key=lambda r: r.get("stargazers_count") or 0, reverse=True)[:5]
        return {
            "total_public": user.public_repos or 0,
            "average_stars": round(sum(r.get("stargazers_count") or 0 for r in repos) / len(repos)),
            "average_forks": round(sum(r.get("forks_count") or 0 for r in repos) / len(repos)),
            "top_repositories": [
                {
                    "name": r.get("name"),
                    "description": r.get("description"),
                    "language": r.get("language"),
                    "stars": r.get("stargazers_count") or 0,
                    "forks": r.get("forks_count") or 0,
                    "updated_at": r.get("updated_at"),
                    "html_url": r.get("html_url"),
                }
                for r in top
            ],
            "language_distribution": _repo_language_distribution(repos),
        }

    async def get_user_analytics(
        self,
        username: str,
        period: str = "30d",
        include_activity: bool = True,
        include_languages: bool = True,
        include_repos: bool = True,
    ) -> Dict[str, Any]:
        user = self.users.find_by_username(username)
        if user is None:
            raise NotFoundError(f"User '{username}' not found")

        key = build_key(
            "user_analytics",
            user.username,
            hash_params({"period": period}),
            f"{include_activity}_{include_languages}_{include_repos}",
        )

        async def compute() -> Dict[str, Any]:
            now = self._clock()
            start, end = get_date_range(period, now)
            records = self.activity.find_for_user(user.id, start, end)
            stats = period_statistics(records)
            timeline = _timeline(records)

            return {
                "user": {
                    "username": user.username,
                    "name": user.name,
                    "avatar_url": user.avatar_url,
                    "location": user.location,
                    "bio": user.bio,
                    "company": user.company,
                    "blog": user.blog,
                    "followers": user.followers or 0,
                    "following": user.following or 0,
                    "public_repos": user.public_repos or 0,
                    "created_at": user.created_at.isoformat() if user.created_at else None,
                    "last_update": user.last_analytics_update.isoformat() if user.last_analytics_update else None,
                },
                "period": {**self._period_info(start, end, period), "records_found": len(records)},
                "statistics": {
                    "period": stats,
                    "lifetime": {
                        "commits": user.total_commits or 0,
                        "pull_requests": user.total_pull_requests or 0,
                        "issues": user.total_issues or 0,
                        "reviews": user.total_reviews or 0,
                        "contributions": user.total_contributions or 0,
                        "streak": {
                            "current": user.contribution_streak or 0,
                            "longest": user.longest_streak or 0,
                        },
                    },
                },
                "rankings": self._user_rankings(user),
                "activity_timeline": timeline if include_activity else None,
                "language_analysis": self._language_analysis(user) if include_languages else None,
                "repository_analysis": self._repository_analysis(user) if include_repos else None,
                "performance_metrics": user_performance_scores(timeline, stats, user),
                "comparison": self._similar_user_comparison(user),
                "generated_at": now.isoformat(),
            }

        return await self.coordinator.get_or_compute(
            CacheNamespace.USER_ANALYTICS, key, compute, ttl_seconds=CacheTTL.USER_ANALYTICS
        )

    # =========================================================================
    # Trends
    # =========================================================================

    async def get_trends(
        self,
        period: str = "90d",
        metric: str = "commits",
        group_by: str = "daily",
        location: Optional[str] = None,
        language: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            metric = ActivityMetric(metric)
            group_by = GroupBy(group_by)
        except ValueError as e:
            raise BadRequestError(str(e)) from None

        key = build_key(
            "trends",
            metric.value,
            group_by.value,
            hash_params({"period": period, "location": location, "language": language}),
        )

        async def compute() -> Dict[str, Any]:
            start, end = get_date_range(period, self._clock())
            usernames = None
            if location or language:
                usernames = self.users.usernames_matching(UserFilter(location=location, language=language))

            buckets = self.activity.aggregate_by_period(start, end, group_by, usernames=usernames)
            points = [
                {
                    "date": b["date"],
                    "commits": b["commits"],
                    "pull_requests": b["pull_requests"],
                    "issues": b["issues"],
                    "reviews": b["reviews"],
                    "total_contributions": b["commits"] + b["pull_requests"] + b["issues"] + b["reviews"],
                    "active_users": b["active_users"],
                    "average_commits_per_user": round(b["avg_commits"], 2),
                    "max_commits_per_user": b["max_commits"],
                    "min_commits_per_user": b["min_commits"],
                    "primary_metric_value": b[metric.value],
                }
                for b in buckets
            ]

            return {
                "trends": points,
                "statistics": trend_statistics([p["primary_metric_value"] for p in points]),
                "period": {
                    **self._period_info(start, end, period),
                    "group_by": group_by.value,
                    "data_points": len(points),
                },
                "filters": {
                    "metric": metric.value,
                    "location": location or None,
                    "language": language or None,
                },
            }

        return await self.coordinator.get_or_compute(
            CacheNamespace.ANALYTICS, key, compute, ttl_seconds=CacheTTL.TRENDS
        )

    # =========================================================================
    # Comparison
    # =========================================================================

    async def compare_users(
        self,
        usernames: List[str],
        period: str = "30d",
        metrics: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        names = sorted({u.strip().lower() for u in usernames or [] if u and u.strip()})
        if not (MIN_COMPARE_USERS <= len(names) <= self.max_compare_users):
            raise BadRequestError(
                f"Please provide {MIN_COMPARE_USERS}-{self.max_compare_users} usernames to compare"
            )

        metrics = metrics or DEFAULT_COMPARE_METRICS
        try:
            metrics = [PeriodMetric(m).value for m in metrics]
        except ValueError as e:
            raise BadRequestError(str(e)) from None

        key = build_key("user_comparison", "_".join(names), hash_params({"period": period}), "_".join(metrics))

        async def compute() -> Dict[str, Any]:
            start, end = get_date_range(period, self._clock())
            users = self.users.find(UserFilter(usernames=names))

            found = {u.username for u in users}
            missing = [name for name in names if name not in found]
            if missing:
                raise NotFoundError(f"Users not found: {', '.join(missing)}")

            entries = []
            for user in users:
                records = self.activity.find_for_user(user.id, start, end)
                stats = period_statistics(records)
                entries.append({
                    "username": user.username,
                    "name": user.name,
                    "avatar_url": user.avatar_url,
                    "location": user.location,
                    "followers": user.followers or 0,
                    "period": stats,
                    "lifetime": {
                        "commits": user.total_commits or 0,
                        "pull_requests": user.total_pull_requests or 0,
                        "issues": user.total_issues or 0,
                        "reviews": user.total_reviews or 0,
                        "contributions": user.total_contributions or 0,
                        "public_repos": user.public_repos or 0,
                        "streak": user.longest_streak or 0,
                    },
                    "activity": [r.to_dict() for r in records],
                    "performance_score": overall_performance_score(stats, user),
                })

            rankings = {}
            statistics = {}
            for metric in metrics:
                ordered = sorted(entries, key=lambda e: e["period"][metric], reverse=True)
                rankings[metric] = [
                    {"username": e["username"], "rank": i + 1, "value": e["period"][metric]}
                    for i, e in enumerate(ordered)
                ]
                values = [e["period"][metric] for e in entries]
                statistics[metric] = {
                    "min": min(values),
                    "max": max(values),
                    "average": round(sum(values) / len(values)),
                    "median": median(values),
                    "standard_deviation": round(standard_deviation(values)),
                }

            return {
                "users": entries,
                "rankings": rankings,
                "statistics": statistics,
                "period": self._period_info(start, end, period),
                "metrics": metrics,
                "total_users": len(entries),
            }

        return await self.coordinator.get_or_compute(
            CacheNamespace.USER_ANALYTICS, key, compute, ttl_seconds=CacheTTL.USER_COMPARISON
        )
