"""
Leaderboard Service

Ranked views over stored users. Every list is computed through the cache
coordinator's leaderboard namespace, keyed on all parameters that change the
result. Per-user rankings read live counts and are not cached.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from src.cache.config import CacheNamespace, CacheTTL
from src.cache.coordinator import CacheCoordinator
from src.cache.keys import build_key, hash_params
from src.database.repository import (
    RepositorySort,
    SortOrder,
    UserFilter,
    UserRepository,
    UserSortField,
)
from src.scoring.activity import contributor_score, overall_ranking_score, repository_score
from src.services.errors import BadRequestError, NotFoundError
from src.utils.helpers import pagination_meta, percentile

logger = logging.getLogger(__name__)


class LeaderboardCategory(str, Enum):
    COMMITS = "commits"
    REPOSITORIES = "repositories"
    FOLLOWERS = "followers"
    CONTRIBUTIONS = "contributions"
    STREAK = "streak"


LEADERBOARD_FIELDS = {
    LeaderboardCategory.COMMITS: UserSortField.TOTAL_COMMITS,
    LeaderboardCategory.REPOSITORIES: UserSortField.PUBLIC_REPOS,
    LeaderboardCategory.FOLLOWERS: UserSortField.FOLLOWERS,
    LeaderboardCategory.CONTRIBUTIONS: UserSortField.TOTAL_CONTRIBUTIONS,
    LeaderboardCategory.STREAK: UserSortField.LONGEST_STREAK,
}


class ContributorCategory(str, Enum):
    COMMITS = "commits"
    PULL_REQUESTS = "pull_requests"
    ISSUES = "issues"
    REVIEWS = "reviews"


CONTRIBUTOR_FIELDS = {
    ContributorCategory.COMMITS: UserSortField.TOTAL_COMMITS,
    ContributorCategory.PULL_REQUESTS: UserSortField.TOTAL_PULL_REQUESTS,
    ContributorCategory.ISSUES: UserSortField.TOTAL_ISSUES,
    ContributorCategory.REVIEWS: UserSortField.TOTAL_REVIEWS,
}

# Categories a single user can be ranked in; streak is leaderboard-only
RANKING_FIELDS = {
    "commits": UserSortField.TOTAL_COMMITS,
    "followers": UserSortField.FOLLOWERS,
    "repositories": UserSortField.PUBLIC_REPOS,
    "contributions": UserSortField.TOTAL_CONTRIBUTIONS,
}

DEFAULT_RANKING_CATEGORIES = list(RANKING_FIELDS)


def _parse_enum(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise BadRequestError(f"Invalid {label} '{value}'. Allowed: {allowed}") from None


def _leaderboard_entry(user, field: UserSortField, rank: int, total: int) -> Dict[str, Any]:
    entry = user.to_public_dict()
    entry.update({
        "rank": rank,
        "category_value": getattr(user, field.value) or 0,
        "percentile": percentile(rank, total),
    })
    return entry


class LeaderboardService:
    """
    Cached leaderboard reads.

    Usage:
        service = LeaderboardService(users, coordinator)
        board = await service.get_leaderboard("commits", location="Berlin")
    """

    def __init__(self, users: UserRepository, coordinator: CacheCoordinator):
        self.users = users
        self.coordinator = coordinator

    async def get_leaderboard(
        self,
        category: str = "commits",
        period: str = "all_time",
        location: Optional[str] = None,
        language: Optional[str] = None,
        page: int = 1,
        limit: int = 100,
    ) -> Dict[str, Any]:
        category = _parse_enum(LeaderboardCategory, category, "category")
        field = LEADERBOARD_FIELDS[category]
        key = build_key(
            "leaderboard",
            category.value,
            hash_params({"period": period, "location": location, "language": language}),
            f"{page}_{limit}",
        )

        async def compute() -> Dict[str, Any]:
            filters = UserFilter(location=location, language=language)
            skip = (page - 1) * limit
            total = self.users.count_documents(filters)
            users = self.users.find(filters, sort=field, order=SortOrder.DESC, offset=skip, limit=limit)
            logger.info(f"Computed {category.value} leaderboard page {page}: {len(users)} of {total} users")
            return {
                "users": [
                    _leaderboard_entry(user, field, skip + i + 1, total)
                    for i, user in enumerate(users)
                ],
                "total_count": total,
                "category": category.value,
                "period": period,
                "location": location or None,
                "language": language or None,
                "pagination": pagination_meta(page, limit, total),
            }

        return await self.coordinator.get_or_compute(
            CacheNamespace.LEADERBOARD, key, compute, ttl_seconds=CacheTTL.LEADERBOARD_PAGE
        )

    async def get_stats(self) -> Dict[str, Any]:
        async def compute() -> Dict[str, Any]:
            totals = self.users.aggregate_totals()
            total_users = totals["total_users"]
            return {
                "overview": {
                    "total_users": total_users,
                    "total_commits": totals["total_commits"],
                    "total_repositories": totals["total_repositories"],
                    "total_followers": totals["total_followers"],
                    "average_commits_per_user": round(totals["total_commits"] / total_users) if total_users else 0,
                    "average_repos_per_user": round(totals["total_repositories"] / total_users) if total_users else 0,
                },
                "top_countries": [
                    {"name": loc["name"], "user_count": loc["user_count"]}
                    for loc in self.users.location_distribution(limit=10)
                ],
                "top_languages": [
                    {
                        "name": lang["name"],
                        "user_count": lang["user_count"],
                        "average_usage": round(lang["avg_percentage"]),
                    }
                    for lang in self.users.language_distribution(limit=10)
                ],
                "recent_users": [
                    {
                        "username": user.username,
                        "name": user.name,
                        "avatar_url": user.avatar_url,
                        "total_commits": user.total_commits or 0,
                        "followers": user.followers or 0,
                        "joined_at": user.created_at.isoformat() if user.created_at else None,
                    }
                    for user in self.users.recent_users(limit=5)
                ],
            }

        return await self.coordinator.get_or_compute(
            CacheNamespace.LEADERBOARD, "leaderboard_stats", compute, ttl_seconds=CacheTTL.LEADERBOARD_STATS
        )

    async def get_top_contributors(
        self,
        category: str = "commits",
        period: str = "all_time",
        limit: int = 50,
    ) -> Dict[str, Any]:
        category = _parse_enum(ContributorCategory, category, "category")
        field = CONTRIBUTOR_FIELDS[category]

        async def compute() -> Dict[str, Any]:
            users = self.users.find(UserFilter(positive_field=field), sort=field, order=SortOrder.DESC, limit=limit)
            contributors = [
                {
                    "rank": i + 1,
                    "username": user.username,
                    "name": user.name,
                    "avatar_url": user.avatar_url,
                    "location": user.location,
                    "primary_language": user.primary_language,
                    "category_value": getattr(user, field.value) or 0,
                    "total_contributions": user.total_contributions or 0,
                    "followers": user.followers or 0,
                    "score": contributor_score(user),
                }
                for i, user in enumerate(users)
            ]
            return {
                "contributors": contributors,
                "category": category.value,
                "period": period,
                "total_contributors": len(contributors),
            }

        return await self.coordinator.get_or_compute(
            CacheNamespace.LEADERBOARD,
            build_key("top_contributors", category.value, hash_params({"period": period}), limit),
            compute,
            ttl_seconds=CacheTTL.TOP_CONTRIBUTORS,
        )

    async def get_top_repositories(
        self,
        sort: str = "stars",
        language: Optional[str] = None,
        limit: int = 50,
    ) -> Dict[str, Any]:
        sort = _parse_enum(RepositorySort, sort, "sort")

        async def compute() -> Dict[str, Any]:
            repos = self.users.top_repositories(sort=sort, language=language, limit=limit)
            repositories = [
                {
                    "rank": i + 1,
                    "name": repo.get("name"),
                    "full_name": repo.get("full_name"),
                    "description": repo.get("description"),
                    "language": repo.get("language"),
                    "stars": repo.get("stargazers_count") or 0,
                    "forks": repo.get("forks_count") or 0,
                    "updated_at": repo.get("updated_at"),
                    "html_url": repo.get("html_url"),
                    "owner": repo["owner"],
                    "score": repository_score(repo),
                }
                for i, repo in enumerate(repos)
            ]
            return {
                "repositories": repositories,
                "sort": sort.value,
                "language": language or None,
                "total_repositories": len(repositories),
            }

        return await self.coordinator.get_or_compute(
            CacheNamespace.LEADERBOARD,
            build_key("top_repositories", sort.value, hash_params({"language": language}), limit),
            compute,
            ttl_seconds=CacheTTL.TOP_REPOSITORIES,
        )

    def get_user_ranking(self, username: str, categories: Optional[List[str]] = None) -> Dict[str, Any]:
        """Live rank of one user per category, plus within their location."""
        user = self.users.find_by_username(username)
        if user is None:
            raise NotFoundError(f"User '{username}' not found")

        total = self.users.count_documents(UserFilter())
        rankings: Dict[str, Dict[str, Any]] = {}

        for category in categories or DEFAULT_RANKING_CATEGORIES:
            category = category.strip()
            field = RANKING_FIELDS.get(category)
            if field is None:
                continue
            rank = self.users.count_greater_than(field, getattr(user, field.value)) + 1
            rankings[category] = {
                "rank": rank,
                "total": total,
                "percentile": percentile(rank, total),
                "value": getattr(user, field.value) or 0,
                "category": category,
            }

        if user.location:
            location_filter = UserFilter(location=user.location)
            rank = self.users.count_greater_than(
                UserSortField.TOTAL_COMMITS, user.total_commits, location_filter
            ) + 1
            location_total = self.users.count_documents(location_filter)
            rankings["location"] = {
                "rank": rank,
                "total": location_total,
                "percentile": percentile(rank, location_total),
                "value": user.total_commits or 0,
                "category": "location",
                "location_name": user.location,
            }

        percentiles = {name: r["percentile"] for name, r in rankings.items() if name in RANKING_FIELDS}
        return {
            "user": {
                "username": user.username,
                "name": user.name,
                "avatar_url": user.avatar_url,
                "location": user.location,
            },
            "rankings": rankings,
            "overall_score": overall_ranking_score(percentiles),
        }
