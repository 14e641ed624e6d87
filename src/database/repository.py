"""
Repository Layer - Clean Interface for Data Operations

Provides the find / count / aggregate / save operations the read paths
need. Handles all SQLAlchemy complexity internally: each method opens its
own session from the injected factory, so repositories are safe to share
between requests and background refresh tasks.

Sortable and rankable fields are closed enums mapped to model columns;
anything outside the enum is rejected before a query is built.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, or_

from .models import ActivityRecord, AnalyticsSnapshot, User
from .session import SessionFactory, session_scope

logger = logging.getLogger(__name__)


# =============================================================================
# FIELD ENUMS
# =============================================================================

class UserSortField(str, Enum):
    """Columns users may be sorted or ranked by"""
    TOTAL_COMMITS = "total_commits"
    TOTAL_PULL_REQUESTS = "total_pull_requests"
    TOTAL_ISSUES = "total_issues"
    TOTAL_REVIEWS = "total_reviews"
    TOTAL_CONTRIBUTIONS = "total_contributions"
    FOLLOWERS = "followers"
    PUBLIC_REPOS = "public_repos"
    LONGEST_STREAK = "longest_streak"
    CREATED_AT = "created_at"
    USERNAME = "username"


USER_SORT_COLUMNS = {
    UserSortField.TOTAL_COMMITS: User.total_commits,
    UserSortField.TOTAL_PULL_REQUESTS: User.total_pull_requests,
    UserSortField.TOTAL_ISSUES: User.total_issues,
    UserSortField.TOTAL_REVIEWS: User.total_reviews,
    UserSortField.TOTAL_CONTRIBUTIONS: User.total_contributions,
    UserSortField.FOLLOWERS: User.followers,
    UserSortField.PUBLIC_REPOS: User.public_repos,
    UserSortField.LONGEST_STREAK: User.longest_streak,
    UserSortField.CREATED_AT: User.created_at,
    UserSortField.USERNAME: User.username,
}


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ActivityMetric(str, Enum):
    """Per-day activity counters"""
    COMMITS = "commits"
    PULL_REQUESTS = "pull_requests"
    ISSUES = "issues"
    REVIEWS = "reviews"
    CONTRIBUTIONS = "contributions"


class GroupBy(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RepositorySort(str, Enum):
    STARS = "stars"
    FORKS = "forks"
    UPDATED = "updated"


REPOSITORY_SORT_KEYS = {
    RepositorySort.STARS: lambda repo: repo.get("stargazers_count") or 0,
    RepositorySort.FORKS: lambda repo: repo.get("forks_count") or 0,
    RepositorySort.UPDATED: lambda repo: repo.get("updated_at") or "",
}


def sort_column(field: UserSortField):
    """Model column for a sort field. Unknown fields raise ValueError."""
    try:
        return USER_SORT_COLUMNS[UserSortField(field)]
    except (KeyError, ValueError):
        raise ValueError(f"Unsupported sort field: {field}") from None


@dataclass
class UserFilter:
    """Criteria for user queries. Unset fields do not filter."""
    search: Optional[str] = None
    location: Optional[str] = None
    language: Optional[str] = None
    min_commits: Optional[int] = None
    max_commits: Optional[int] = None
    min_followers: Optional[int] = None
    max_followers: Optional[int] = None
    is_verified: Optional[bool] = None
    is_active: Optional[bool] = True
    usernames: Optional[List[str]] = None
    exclude_username: Optional[str] = None
    positive_field: Optional[UserSortField] = None


def _icontains(column, value: str):
    return func.lower(column).contains(value.lower(), autoescape=True)


def _apply_user_filter(query, filters: Optional[UserFilter]):
    if filters is None:
        return query

    if filters.is_active is not None:
        query = query.filter(User.is_active == filters.is_active)
    if filters.search:
        query = query.filter(or_(
            _icontains(User.username, filters.search),
            _icontains(User.name, filters.search),
            _icontains(User.company, filters.search),
        ))
    if filters.location:
        query = query.filter(_icontains(User.location, filters.location))
    if filters.language:
        query = query.filter(_icontains(User.language_names, filters.language))
    if filters.min_commits is not None:
        query = query.filter(User.total_commits >= filters.min_commits)
    if filters.max_commits is not None:
        query = query.filter(User.total_commits <= filters.max_commits)
    if filters.min_followers is not None:
        query = query.filter(User.followers >= filters.min_followers)
    if filters.max_followers is not None:
        query = query.filter(User.followers <= filters.max_followers)
    if filters.is_verified is not None:
        query = query.filter(User.is_verified == filters.is_verified)
    if filters.usernames is not None:
        query = query.filter(User.username.in_([u.lower() for u in filters.usernames]))
    if filters.exclude_username:
        query = query.filter(User.username != filters.exclude_username.lower())
    if filters.positive_field is not None:
        query = query.filter(sort_column(filters.positive_field) > 0)
    return query


# Weights for the composite performance score
PERFORMANCE_WEIGHTS = {
    "total_commits": 1,
    "total_pull_requests": 3,
    "total_issues": 2,
    "followers": 0.1,
}


def performance_score_expression():
    return (
        func.coalesce(User.total_commits, 0) * PERFORMANCE_WEIGHTS["total_commits"]
        + func.coalesce(User.total_pull_requests, 0) * PERFORMANCE_WEIGHTS["total_pull_requests"]
        + func.coalesce(User.total_issues, 0) * PERFORMANCE_WEIGHTS["total_issues"]
        + func.coalesce(User.followers, 0) * PERFORMANCE_WEIGHTS["followers"]
    )


# =============================================================================
# USERS
# =============================================================================

class UserRepository:
    """Queries over stored users."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def find_by_username(self, username: str) -> Optional[User]:
        """Case-insensitive lookup."""
        with session_scope(self._session_factory) as db:
            return db.query(User).filter(User.username == username.lower()).first()

    def find_by_github_id_or_username(self, github_id: Optional[int], username: str) -> Optional[User]:
        with session_scope(self._session_factory) as db:
            conditions = [User.username == username.lower()]
            if github_id is not None:
                conditions.append(User.github_id == github_id)
            return db.query(User).filter(or_(*conditions)).first()

    def find_one(self, filters: UserFilter) -> Optional[User]:
        with session_scope(self._session_factory) as db:
            return _apply_user_filter(db.query(User), filters).first()

    def find(
        self,
        filters: Optional[UserFilter] = None,
        sort: UserSortField = UserSortField.TOTAL_COMMITS,
        order: SortOrder = SortOrder.DESC,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[User]:
        column = sort_column(sort)
        ordering = column.desc() if SortOrder(order) == SortOrder.DESC else column.asc()

        with session_scope(self._session_factory) as db:
            query = _apply_user_filter(db.query(User), filters)
            # Earliest-tracked user wins ties
            query = query.order_by(ordering, User.created_at.asc(), User.id.asc())
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return query.all()

    def count_documents(self, filters: Optional[UserFilter] = None) -> int:
        with session_scope(self._session_factory) as db:
            return _apply_user_filter(db.query(User), filters).count()

    def count_greater_than(
        self,
        field: UserSortField,
        value: Any,
        filters: Optional[UserFilter] = None,
    ) -> int:
        """Number of users strictly ahead on field; rank = this + 1."""
        column = sort_column(field)
        with session_scope(self._session_factory) as db:
            query = _apply_user_filter(db.query(User), filters or UserFilter())
            return query.filter(func.coalesce(column, 0) > (value or 0)).count()

    def count_fetched_between(self, start: datetime, end: Optional[datetime] = None) -> int:
        with session_scope(self._session_factory) as db:
            query = db.query(User).filter(User.is_active.is_(True), User.last_fetched_at >= start)
            if end is not None:
                query = query.filter(User.last_fetched_at < end)
            return query.count()

    def count_created_between(self, start: datetime, end: datetime) -> int:
        with session_scope(self._session_factory) as db:
            return db.query(User).filter(User.created_at >= start, User.created_at <= end).count()

    def save(self, user: User) -> User:
        """Insert or update a user. Returns the persisted (detached) instance."""
        user.username = user.username.lower()
        user.recompute_totals()
        with session_scope(self._session_factory) as db:
            merged = db.merge(user)
            db.flush()
            return merged

    # =========================================================================
    # Aggregations
    # =========================================================================

    def aggregate_totals(self) -> Dict[str, Any]:
        with session_scope(self._session_factory) as db:
            row = db.query(
                func.count(User.id),
                func.coalesce(func.sum(User.total_commits), 0),
                func.coalesce(func.sum(User.public_repos), 0),
                func.coalesce(func.sum(User.followers), 0),
                func.coalesce(func.sum(User.following), 0),
                func.avg(User.total_commits),
                func.avg(User.public_repos),
                func.avg(User.followers),
            ).filter(User.is_active.is_(True)).one()

        return {
            "total_users": row[0] or 0,
            "total_commits": int(row[1] or 0),
            "total_repositories": int(row[2] or 0),
            "total_followers": int(row[3] or 0),
            "total_following": int(row[4] or 0),
            "avg_commits_per_user": float(row[5] or 0),
            "avg_repos_per_user": float(row[6] or 0),
            "avg_followers_per_user": float(row[7] or 0),
        }

    def location_distribution(self, limit: int = 20) -> List[Dict[str, Any]]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(
                    User.location,
                    func.count(User.id).label("user_count"),
                    func.avg(User.total_commits),
                    func.coalesce(func.sum(User.total_commits), 0),
                )
                .filter(User.is_active.is_(True), User.location.isnot(None), User.location != "")
                .group_by(User.location)
                .order_by(func.count(User.id).desc(), User.location.asc())
                .limit(limit)
                .all()
            )

        return [
            {
                "name": location,
                "user_count": user_count,
                "avg_commits": float(avg_commits or 0),
                "total_commits": int(total_commits or 0),
            }
            for location, user_count, avg_commits, total_commits in rows
        ]

    def language_distribution(self, limit: int = 15) -> List[Dict[str, Any]]:
        """Users per language across everyone's top languages."""
        with session_scope(self._session_factory) as db:
            rows = db.query(User.top_languages).filter(User.is_active.is_(True)).all()

        counts: Dict[str, int] = defaultdict(int)
        percentages: Dict[str, float] = defaultdict(float)
        for (languages,) in rows:
            for lang in languages or []:
                name = lang.get("name")
                if not name:
                    continue
                counts[name] += 1
                percentages[name] += lang.get("percentage") or 0

        ranked = sorted(counts, key=lambda name: (-counts[name], name))[:limit]
        return [
            {
                "name": name,
                "user_count": counts[name],
                "avg_percentage": percentages[name] / counts[name],
                "total_percentage": percentages[name],
            }
            for name in ranked
        ]

    def top_performers(self, limit: int = 10) -> List[Dict[str, Any]]:
        score = performance_score_expression()
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(User, score.label("performance_score"))
                .filter(User.is_active.is_(True))
                .order_by(score.desc(), User.id.asc())
                .limit(limit)
                .all()
            )
        return [{"user": user, "performance_score": float(s or 0)} for user, s in rows]

    def top_repositories(
        self,
        sort: RepositorySort = RepositorySort.STARS,
        language: Optional[str] = None,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        """Flatten every user's recent repositories and rank them."""
        sort_key = REPOSITORY_SORT_KEYS[RepositorySort(sort)]
        with session_scope(self._session_factory) as db:
            users = db.query(User).filter(User.is_active.is_(True)).all()

        repositories = []
        for user in users:
            for repo in user.recent_repos or []:
                if language and language.lower() not in (repo.get("language") or "").lower():
                    continue
                repositories.append({
                    **repo,
                    "owner": {
                        "username": user.username,
                        "name": user.name,
                        "avatar_url": user.avatar_url,
                    },
                })

        repositories.sort(key=sort_key, reverse=True)
        return repositories[:limit]

    def recent_users(self, limit: int = 5) -> List[User]:
        return self.find(UserFilter(), sort=UserSortField.CREATED_AT, order=SortOrder.DESC, limit=limit)

    def find_similar(self, user: User, limit: int = 100) -> List[User]:
        """Users sharing a location or any top language with user."""
        conditions = []
        if user.location:
            conditions.append(User.location == user.location)
        for lang in user.top_languages or []:
            if lang.get("name"):
                conditions.append(_icontains(User.language_names, f",{lang['name']},"))
        if not conditions:
            return []

        with session_scope(self._session_factory) as db:
            return (
                db.query(User)
                .filter(User.is_active.is_(True), User.id != user.id, or_(*conditions))
                .limit(limit)
                .all()
            )

    def usernames_matching(self, filters: UserFilter) -> List[str]:
        with session_scope(self._session_factory) as db:
            rows = _apply_user_filter(db.query(User.username), filters).all()
        return [username for (username,) in rows]


# =============================================================================
# ACTIVITY
# =============================================================================

def _bucket_key(day: date, group_by: GroupBy) -> str:
    if group_by == GroupBy.MONTHLY:
        return f"{day.year}-{day.month:02d}"
    if group_by == GroupBy.WEEKLY:
        return (day - timedelta(days=day.weekday())).isoformat()
    return day.isoformat()


class ActivityRepository:
    """Daily activity rows per user."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def find_for_user(
        self,
        user_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[ActivityRecord]:
        with session_scope(self._session_factory) as db:
            query = db.query(ActivityRecord).filter(ActivityRecord.user_id == user_id)
            if start is not None:
                query = query.filter(ActivityRecord.date >= start.date())
            if end is not None:
                query = query.filter(ActivityRecord.date <= end.date())
            return query.order_by(ActivityRecord.date.asc()).all()

    def _upsert(self, db, user: User, day: date) -> ActivityRecord:
        record = (
            db.query(ActivityRecord)
            .filter(ActivityRecord.user_id == user.id, ActivityRecord.date == day)
            .first()
        )
        if record is None:
            record = ActivityRecord(
                user_id=user.id,
                username=user.username,
                date=day,
                contributions=0,
                commits=0,
                pull_requests=0,
                issues=0,
                reviews=0,
            )
            db.add(record)
        return record

    def replace_from_calendar(self, user: User, days: Iterable[Any]) -> int:
        """
        Store contribution calendar counts. Event-derived counters on
        existing rows are left untouched. Returns rows written.
        """
        count = 0
        with session_scope(self._session_factory) as db:
            for day in days:
                record = self._upsert(db, user, date.fromisoformat(str(day.date)[:10]))
                record.contributions = day.contribution_count
                record.contribution_level = day.contribution_level
                count += 1
        logger.debug(f"Stored {count} calendar days for {user.username}")
        return count

    def record_event_counts(self, user: User, counts: Dict[date, Dict[str, int]]) -> int:
        """Overwrite per-day commit/PR/issue/review counts derived from events."""
        with session_scope(self._session_factory) as db:
            for day, values in counts.items():
                record = self._upsert(db, user, day)
                record.commits = values.get("commits", 0)
                record.pull_requests = values.get("pull_requests", 0)
                record.issues = values.get("issues", 0)
                record.reviews = values.get("reviews", 0)
        return len(counts)

    def aggregate_by_period(
        self,
        start: datetime,
        end: datetime,
        group_by: GroupBy = GroupBy.DAILY,
        usernames: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Bucket activity rows by day, ISO week or month, oldest first."""
        group_by = GroupBy(group_by)
        with session_scope(self._session_factory) as db:
            query = db.query(ActivityRecord).filter(
                ActivityRecord.date >= start.date(),
                ActivityRecord.date <= end.date(),
            )
            if usernames is not None:
                query = query.filter(ActivityRecord.username.in_([u.lower() for u in usernames]))
            records = query.all()

        buckets: Dict[str, Dict[str, Any]] = {}
        for record in records:
            key = _bucket_key(record.date, group_by)
            bucket = buckets.setdefault(key, {
                "date": key,
                "commits": 0,
                "pull_requests": 0,
                "issues": 0,
                "reviews": 0,
                "contributions": 0,
                "_users": set(),
                "_commit_values": [],
            })
            for metric in ActivityMetric:
                bucket[metric.value] += getattr(record, metric.value) or 0
            bucket["_users"].add(record.username)
            bucket["_commit_values"].append(record.commits or 0)

        results = []
        for key in sorted(buckets):
            bucket = buckets[key]
            commit_values = bucket.pop("_commit_values")
            bucket["active_users"] = len(bucket.pop("_users"))
            bucket["avg_commits"] = sum(commit_values) / len(commit_values)
            bucket["max_commits"] = max(commit_values)
            bucket["min_commits"] = min(commit_values)
            results.append(bucket)
        return results


# =============================================================================
# ANALYTICS SNAPSHOTS
# =============================================================================

class AnalyticsSnapshotRepository:
    """Persisted per-user period analytics."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def find_one(self, user_id: int, period: str) -> Optional[AnalyticsSnapshot]:
        with session_scope(self._session_factory) as db:
            return (
                db.query(AnalyticsSnapshot)
                .filter(AnalyticsSnapshot.user_id == user_id, AnalyticsSnapshot.period == period)
                .first()
            )

    def save(self, snapshot: AnalyticsSnapshot) -> AnalyticsSnapshot:
        with session_scope(self._session_factory) as db:
            merged = db.merge(snapshot)
            db.flush()
            return merged
