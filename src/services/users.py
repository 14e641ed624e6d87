"""
User Service

Read and refresh paths for tracked GitHub users:
1. Profile reads served from the relational store, cold-fetched on first sight
2. Opportunistic background refresh when a stored profile goes stale
3. Forced and bulk refreshes, with cache invalidation
4. Per-user statistics, rankings, streaks and period analytics snapshots
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from src.cache.freshness import FreshnessPolicy
from src.cache.invalidation import CacheEvent, CacheInvalidator
from src.database.models import AnalyticsSnapshot, User
from src.database.repository import (
    ActivityRepository,
    AnalyticsSnapshotRepository,
    SortOrder,
    UserFilter,
    UserRepository,
    UserSortField,
)
from src.github.client import GitHubAPIError, GitHubNotFoundError, GitHubRateLimitError
from src.github.models import ContributionsDTO, LanguageStat, ProfileDTO, RepositoryDTO
from src.github.service import GitHubService
from src.scoring.activity import (
    activity_patterns,
    activity_score,
    calculate_streaks,
    collaboration_metrics,
    daily_contribution_counts,
    events_in_range,
    performance_averages,
    repository_metrics,
    summarize_contributions,
)
from src.services.errors import AppError, BadRequestError, NotFoundError
from src.utils.helpers import get_date_range, pagination_meta, percentile, utcnow

logger = logging.getLogger(__name__)

TOP_LANGUAGES_STORED = 10
RECENT_REPOS_STORED = 10
PROFILE_REPOS_LIMIT = 10
PROFILE_EVENTS_LIMIT = 20
MIN_SEARCH_QUERY_LENGTH = 2

POSITION_CATEGORIES = [
    UserSortField.TOTAL_COMMITS,
    UserSortField.FOLLOWERS,
    UserSortField.PUBLIC_REPOS,
    UserSortField.TOTAL_CONTRIBUTIONS,
]

# Columns create_or_update_user copies from incoming data
WRITABLE_USER_FIELDS = {
    "github_id", "username", "name", "email", "bio", "avatar_url", "html_url",
    "company", "location", "blog", "twitter_username", "public_repos",
    "public_gists", "followers", "following", "github_created_at",
    "github_updated_at", "total_commits", "total_pull_requests", "total_issues",
    "total_reviews", "contribution_streak", "longest_streak", "recent_repos",
    "is_verified",
}


def _language_dict(lang: LanguageStat) -> Dict[str, Any]:
    return {
        "name": lang.name,
        "percentage": lang.percentage,
        "bytes": lang.bytes,
        "color": lang.color,
    }


def _recent_repo_dict(repo: RepositoryDTO) -> Dict[str, Any]:
    return {
        "name": repo.name,
        "full_name": repo.full_name,
        "html_url": repo.html_url,
        "description": repo.description,
        "language": repo.language,
        "stargazers_count": repo.stargazers_count,
        "forks_count": repo.forks_count,
        "updated_at": repo.updated_at.isoformat() if repo.updated_at else None,
    }


def merge_user_data(
    profile: ProfileDTO,
    contributions: Optional[ContributionsDTO] = None,
    languages: Optional[List[LanguageStat]] = None,
    repositories: Optional[List[RepositoryDTO]] = None,
) -> Dict[str, Any]:
    """Flatten upstream DTOs into user column values. Missing parts are left out."""
    data = profile.to_dict()
    data["github_created_at"] = profile.github_created_at
    data["github_updated_at"] = profile.github_updated_at

    if contributions is not None:
        streaks = calculate_streaks(contributions.calendar)
        data.update({
            "total_commits": contributions.total_commits,
            "total_pull_requests": contributions.total_pull_requests,
            "total_issues": contributions.total_issues,
            "total_reviews": contributions.total_reviews,
            "contribution_streak": streaks.current,
            "longest_streak": streaks.longest,
        })

    if languages:
        data["top_languages"] = [_language_dict(lang) for lang in languages[:TOP_LANGUAGES_STORED]]

    if repositories:
        ordered = sorted(repositories, key=lambda r: r.updated_at or datetime.min, reverse=True)
        data["recent_repos"] = [_recent_repo_dict(r) for r in ordered[:RECENT_REPOS_STORED]]

    return data


class UserService:
    """
    Tracked-user operations over the store and the cached GitHub service.

    Usage:
        service = UserService(github, users, activity, snapshots, invalidator)
        data = await service.get_user_profile("octocat", include_repos=True)
    """

    def __init__(
        self,
        github: GitHubService,
        users: UserRepository,
        activity: ActivityRepository,
        snapshots: AnalyticsSnapshotRepository,
        invalidator: CacheInvalidator,
        freshness: Optional[FreshnessPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
        request_delay: float = 0.1,
    ):
        self.github = github
        self.users = users
        self.activity = activity
        self.snapshots = snapshots
        self.invalidator = invalidator
        self.freshness = freshness or FreshnessPolicy()
        self._clock = clock
        self.request_delay = request_delay
        self._refresh_tasks: Dict[str, asyncio.Task] = {}

    # =========================================================================
    # Upstream fetching
    # =========================================================================

    async def _optional(self, awaitable: Awaitable[Any], what: str, username: str) -> Any:
        """Await an upstream call, logging and returning None on failure."""
        try:
            return await awaitable
        except GitHubAPIError as e:
            logger.warning(f"Failed to fetch {what} for {username}: {e}")
            return None

    async def _fetch_user_data(
        self,
        username: str,
        include_contributions: bool = True,
        include_languages: bool = True,
        tolerate_partial: bool = True,
    ) -> Dict[str, Any]:
        """
        Fetch profile, contributions, languages and repositories in parallel.

        The profile is required. With tolerate_partial the other parts
        degrade to None; otherwise their errors propagate.
        """
        async def nothing():
            return None

        def part(awaitable, what):
            if tolerate_partial:
                return self._optional(awaitable, what, username)
            return awaitable

        contributions_call = (
            part(self.github.get_contributions(username), "contributions")
            if include_contributions else nothing()
        )
        languages_call = (
            part(self.github.get_languages(username), "languages")
            if include_languages else nothing()
        )

        try:
            profile, contributions, languages = await asyncio.gather(
                self.github.get_profile(username),
                contributions_call,
                languages_call,
            )
        except GitHubNotFoundError:
            raise NotFoundError(f"User '{username}' not found on GitHub") from None

        # Served from the cache entry get_languages just populated
        repositories = await self._optional(
            self.github.get_repositories(username, type="owner"), "repositories", username
        )

        return {
            "profile": profile,
            "contributions": contributions,
            "languages": languages,
            "repositories": repositories,
        }

    async def _persist(self, fetched: Dict[str, Any]) -> User:
        user = self.create_or_update_user(merge_user_data(**fetched))
        contributions: Optional[ContributionsDTO] = fetched.get("contributions")
        if contributions is not None and contributions.calendar:
            self.activity.replace_from_calendar(user, contributions.calendar)
        return user

    def _update_rank(self, user: User, field: UserSortField = UserSortField.TOTAL_COMMITS) -> User:
        user.global_rank = self.users.count_greater_than(field, getattr(user, field.value)) + 1
        return self.users.save(user)

    # =========================================================================
    # Writes
    # =========================================================================

    def create_or_update_user(self, data: Dict[str, Any]) -> User:
        """Upsert by GitHub id or username and stamp last_fetched_at."""
        username = data["username"]
        existing = self.users.find_by_github_id_or_username(data.get("github_id"), username)
        user = existing or User()

        for key, value in data.items():
            if key in WRITABLE_USER_FIELDS:
                setattr(user, key, value)
        if data.get("top_languages") is not None:
            user.set_languages(data["top_languages"])
        if existing is None:
            user.is_active = True

        user.last_fetched_at = self._clock()
        saved = self.users.save(user)

        if existing is None:
            logger.info(f"Created new user: {username}")
        else:
            logger.info(f"Updated user: {username}")
        return saved

    async def refresh_user(
        self,
        username: str,
        include_contributions: bool = True,
        include_languages: bool = True,
    ) -> User:
        """Forced synchronous refresh from GitHub."""
        self.invalidator.handle_event(CacheEvent.USER_REFRESHED, username=username)
        fetched = await self._fetch_user_data(
            username,
            include_contributions=include_contributions,
            include_languages=include_languages,
            tolerate_partial=False,
        )
        user = self._update_rank(await self._persist(fetched))
        logger.info(f"Refreshed user data for: {username}")
        return user

    async def _cold_fetch(self, username: str) -> User:
        fetched = await self._fetch_user_data(username)
        user = await self._persist(fetched)
        logger.info(f"Created new user profile with complete data for: {username}")
        return user

    def schedule_refresh(self, username: str) -> asyncio.Task:
        """Start a background refresh unless one is already running for username."""
        key = username.lower()
        task = self._refresh_tasks.get(key)
        if task is not None and not task.done():
            return task

        task = asyncio.create_task(self._background_refresh(key))
        self._refresh_tasks[key] = task
        def forget(finished: asyncio.Task):
            if self._refresh_tasks.get(key) is finished:
                del self._refresh_tasks[key]

        task.add_done_callback(forget)
        return task

    async def _background_refresh(self, username: str):
        # Contributions and languages are optional here; stored values survive
        try:
            self.invalidator.handle_event(CacheEvent.USER_REFRESHED, username=username)
            fetched = await self._fetch_user_data(username)
            self._update_rank(await self._persist(fetched))
            logger.info(f"Background refresh completed for: {username}")
        except (AppError, GitHubAPIError) as e:
            logger.warning(f"Failed to refresh user data for {username}: {e}")
        except Exception as e:
            logger.exception(f"Background refresh crashed for {username}: {e}")

    async def wait_for_refreshes(self):
        """Wait for in-flight background refreshes (shutdown, tests)."""
        tasks = list(self._refresh_tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def bulk_update_users(self, usernames: List[str], force_update: bool = False) -> Dict[str, Any]:
        results: Dict[str, Any] = {"success": [], "failed": [], "skipped": [], "total": len(usernames)}
        now = self._clock()

        for username in usernames:
            if not force_update:
                existing = self.users.find_by_username(username)
                if existing is not None and self.freshness.is_profile_fresh(existing, now):
                    results["skipped"].append({
                        "username": username,
                        "reason": "Recently updated",
                        "last_update": existing.last_fetched_at.isoformat(),
                    })
                    continue

            try:
                fetched = await self._fetch_user_data(username)
                user = self._update_rank(await self._persist(fetched))
                self.invalidator.handle_event(CacheEvent.USER_UPDATED, username=username)
                results["success"].append({"username": username, "rank": user.global_rank})
            except (AppError, GitHubAPIError) as e:
                results["failed"].append({
                    "username": username,
                    "error": str(e),
                    "status_code": getattr(e, "status_code", None),
                })
                logger.warning(f"Failed to update user {username}: {e}")

            if self.request_delay:
                await asyncio.sleep(self.request_delay)

        if results["success"]:
            self.invalidator.handle_event(CacheEvent.USERS_BULK_UPDATED)

        logger.info(
            f"Bulk update completed: {len(results['success'])} success, "
            f"{len(results['failed'])} failed, {len(results['skipped'])} skipped"
        )
        return results

    # =========================================================================
    # Reads
    # =========================================================================

    def _require_user(self, username: str) -> User:
        user = self.users.find_by_username(username)
        if user is None:
            raise NotFoundError(f"User '{username}' not found")
        return user

    async def get_user_profile(
        self,
        username: str,
        include_repos: bool = False,
        include_activity: bool = False,
    ) -> Dict[str, Any]:
        user = self.users.find_by_username(username)

        if user is None:
            user = await self._cold_fetch(username)
        elif self.freshness.profile_needs_refresh(user, self._clock()):
            logger.info(f"Stored profile for {username} is stale, refreshing in background")
            self.schedule_refresh(username)

        data: Dict[str, Any] = {"profile": user.to_public_dict()}

        if include_repos:
            repositories = await self._optional(
                self.github.get_repositories(username, type="owner", sort="updated", per_page=PROFILE_REPOS_LIMIT),
                "repositories",
                username,
            )
            data["repositories"] = [r.to_dict() for r in repositories or []]

        if include_activity:
            events = await self._optional(
                self.github.get_events(username, per_page=PROFILE_EVENTS_LIMIT),
                "activity",
                username,
            )
            data["recent_activity"] = [e.to_dict() for e in events or []]

        return data

    def list_users(
        self,
        filters: Optional[UserFilter] = None,
        sort: UserSortField = UserSortField.TOTAL_COMMITS,
        order: SortOrder = SortOrder.DESC,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        filters = filters or UserFilter()
        total = self.users.count_documents(filters)
        users = self.users.find(filters, sort=sort, order=order, offset=(page - 1) * limit, limit=limit)
        return {
            "users": [u.to_public_dict() for u in users],
            "pagination": pagination_meta(page, limit, total),
            "filters": {
                "total_results": total,
                "applied_filters": {
                    "search": filters.search,
                    "location": filters.location,
                    "language": filters.language,
                    "min_commits": filters.min_commits,
                    "max_commits": filters.max_commits,
                },
            },
        }

    async def search_users(
        self,
        query: str,
        sort: str = "followers",
        order: str = "desc",
        per_page: int = 30,
        page: int = 1,
    ) -> Dict[str, Any]:
        if not query or len(query.strip()) < MIN_SEARCH_QUERY_LENGTH:
            raise BadRequestError(f"Search query must be at least {MIN_SEARCH_QUERY_LENGTH} characters long")

        try:
            result = await self.github.search_users(query, sort=sort, order=order, per_page=per_page, page=page)
        except GitHubRateLimitError:
            raise
        except GitHubAPIError as e:
            raise AppError(f"Search failed: {e}", status_code=502, error_type="github_api_error") from e

        usernames = [u["username"] for u in result.users if u.get("username")]
        stored = {
            u.username: u
            for u in self.users.find(UserFilter(usernames=usernames, is_active=None))
        } if usernames else {}

        enriched = []
        for github_user in result.users:
            db_user = stored.get((github_user.get("username") or "").lower())
            entry = {**github_user, "in_database": db_user is not None}
            if db_user is not None:
                entry.update({
                    "total_commits": db_user.total_commits,
                    "followers": db_user.followers,
                    "global_rank": db_user.global_rank,
                })
            enriched.append(entry)

        return {
            "users": enriched,
            "total_count": result.total_count,
            "incomplete_results": result.incomplete_results,
            "query": query,
        }

    def _rank(self, user: User, field: UserSortField) -> int:
        return self.users.count_greater_than(field, getattr(user, field.value)) + 1

    def get_user_stats(self, username: str) -> Dict[str, Any]:
        user = self._require_user(username)
        account_age = user.account_age_days
        return {
            "profile": {
                "account_age_days": account_age,
                "profile_completion": user.profile_completion,
                "total_contributions": user.total_contributions or 0,
                "contribution_streak": user.contribution_streak or 0,
                "longest_streak": user.longest_streak or 0,
            },
            "rankings": {
                "global": user.global_rank,
                "by_commits": self._rank(user, UserSortField.TOTAL_COMMITS),
                "by_followers": self._rank(user, UserSortField.FOLLOWERS),
                "by_repos": self._rank(user, UserSortField.PUBLIC_REPOS),
            },
            "activity": {
                "average_commits_per_day": (user.total_commits or 0) / (account_age or 1),
                "top_languages": (user.top_languages or [])[:5],
                "recent_repos": (user.recent_repos or [])[:5],
            },
        }

    def get_leaderboard_positions(self, username: str) -> Dict[str, Any]:
        user = self._require_user(username)
        total = self.users.count_documents(UserFilter())
        positions = {}
        for field in POSITION_CATEGORIES:
            rank = self._rank(user, field)
            positions[field.value] = {
                "rank": rank,
                "total": total,
                "percentile": percentile(rank, total),
                "value": getattr(user, field.value) or 0,
            }
        return positions

    def update_contribution_streak(self, username: str) -> Dict[str, int]:
        user = self._require_user(username)
        records = self.activity.find_for_user(user.id)
        streaks = calculate_streaks(records)

        user.contribution_streak = streaks.current
        user.longest_streak = streaks.longest
        self.users.save(user)
        return streaks.to_dict()

    async def calculate_user_analytics(self, username: str, period: str = "30d") -> Dict[str, Any]:
        """
        Period analytics from public events, persisted as a snapshot.

        A stored snapshot younger than the analytics threshold is returned
        without touching GitHub.
        """
        user = self._require_user(username)
        now = self._clock()
        snapshot = self.snapshots.find_one(user.id, period)

        if not self.freshness.analytics_needs_recalculation(snapshot, now):
            return snapshot.to_dict()

        start, end = get_date_range(period, now)
        events, repositories, languages = await asyncio.gather(
            self._optional(self.github.get_events(user.username, per_page=100), "events", username),
            self._optional(self.github.get_repositories(user.username, type="owner"), "repositories", username),
            self._optional(self.github.get_languages(user.username), "languages", username),
        )
        events = events_in_range(events or [], start, end)
        repositories = repositories or []

        contributions = summarize_contributions(events)
        if events:
            self.activity.record_event_counts(user, daily_contribution_counts(events))

        snapshot = snapshot or AnalyticsSnapshot(user_id=user.id, username=user.username, period=period)
        snapshot.start_date = start
        snapshot.end_date = end
        snapshot.contributions = contributions
        snapshot.repositories = repository_metrics(repositories, start, end)
        snapshot.languages = [_language_dict(lang) for lang in languages or []]
        snapshot.activity_patterns = activity_patterns(events)
        snapshot.collaboration = collaboration_metrics(events, repositories)
        snapshot.performance = performance_averages(contributions, start, end)
        snapshot.activity_score = activity_score(contributions)
        snapshot.last_calculated_at = now
        snapshot = self.snapshots.save(snapshot)

        user.last_analytics_update = now
        self.users.save(user)

        logger.info(f"Calculated {period} analytics for {username}")
        return snapshot.to_dict()
