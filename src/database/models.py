"""
SQLAlchemy Models for the GitHub Analytics Service

Three tables:
1. users: GitHub profile plus derived contribution statistics
2. activity_records: one row per user per day (contribution calendar + events)
3. analytics_snapshots: per-user computed analytics for a period

Every derived row carries the timestamp the freshness policy reads
(users.last_fetched_at, analytics_snapshots.last_calculated_at).
"""

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Date, Text,
    ForeignKey, Index, UniqueConstraint, JSON,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


# =============================================================================
# ENUMS
# =============================================================================

class ContributionLevel(enum.Enum):
    """GitHub contribution calendar intensity"""
    NONE = "NONE"
    FIRST_QUARTILE = "FIRST_QUARTILE"
    SECOND_QUARTILE = "SECOND_QUARTILE"
    THIRD_QUARTILE = "THIRD_QUARTILE"
    FOURTH_QUARTILE = "FOURTH_QUARTILE"


# =============================================================================
# USERS
# =============================================================================

class User(Base):
    """A GitHub user tracked by the service"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    github_id = Column(Integer, unique=True, nullable=False)
    username = Column(String(39), unique=True, nullable=False)  # Always lowercase

    # Profile
    name = Column(String(255))
    email = Column(String(255))
    bio = Column(Text)
    avatar_url = Column(String(500), nullable=False, default="")
    html_url = Column(String(500), nullable=False, default="")
    company = Column(String(255))
    location = Column(String(255))
    blog = Column(String(500))
    twitter_username = Column(String(100))

    # GitHub counters
    public_repos = Column(Integer, default=0)
    public_gists = Column(Integer, default=0)
    followers = Column(Integer, default=0)
    following = Column(Integer, default=0)
    github_created_at = Column(DateTime)
    github_updated_at = Column(DateTime)

    # Contribution statistics
    total_commits = Column(Integer, default=0)
    total_pull_requests = Column(Integer, default=0)
    total_issues = Column(Integer, default=0)
    total_reviews = Column(Integer, default=0)
    total_contributions = Column(Integer, default=0)  # Sum of the four above
    contribution_streak = Column(Integer, default=0)
    longest_streak = Column(Integer, default=0)

    # Top languages [{name, percentage, bytes, color}]
    top_languages = Column(JSON, default=list)
    # ",python,go," for substring filtering without JSON operators
    language_names = Column(Text, default="")

    # Recent repositories [{name, full_name, description, stargazers_count, ...}]
    recent_repos = Column(JSON, default=list)

    # Ranking
    global_rank = Column(Integer)

    # Freshness
    last_fetched_at = Column(DateTime)
    last_analytics_update = Column(DateTime)

    # Flags
    is_active = Column(Boolean, default=True)
    is_verified = Column(Boolean, default=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    activity_records = relationship("ActivityRecord", back_populates="user", cascade="all, delete-orphan")
    analytics_snapshots = relationship("AnalyticsSnapshot", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_user_commits", "total_commits"),
        Index("idx_user_followers", "followers"),
        Index("idx_user_location", "location"),
        Index("idx_user_last_fetched", "last_fetched_at"),
        Index("idx_user_active", "is_active"),
    )

    def set_languages(self, languages: List[Dict[str, Any]]):
        self.top_languages = languages
        names = [lang["name"].lower() for lang in languages if lang.get("name")]
        self.language_names = f",{','.join(names)}," if names else ""

    def recompute_totals(self):
        self.total_contributions = (
            (self.total_commits or 0)
            + (self.total_pull_requests or 0)
            + (self.total_issues or 0)
            + (self.total_reviews or 0)
        )

    @property
    def primary_language(self) -> Optional[str]:
        return self.top_languages[0]["name"] if self.top_languages else None

    @property
    def account_age_days(self) -> int:
        if not self.github_created_at:
            return 0
        return (datetime.utcnow() - self.github_created_at).days

    @property
    def profile_completion(self) -> int:
        fields = [self.name, self.bio, self.company, self.location, self.blog, self.email]
        filled = sum(1 for f in fields if f and f.strip())
        return round(filled / len(fields) * 100)

    def to_public_dict(self) -> Dict[str, Any]:
        """Serialized profile without private fields (email)."""
        return {
            "username": self.username,
            "github_id": self.github_id,
            "name": self.name,
            "bio": self.bio,
            "avatar_url": self.avatar_url,
            "html_url": self.html_url,
            "company": self.company,
            "location": self.location,
            "blog": self.blog,
            "twitter_username": self.twitter_username,
            "public_repos": self.public_repos or 0,
            "public_gists": self.public_gists or 0,
            "followers": self.followers or 0,
            "following": self.following or 0,
            "github_created_at": self.github_created_at.isoformat() if self.github_created_at else None,
            "total_commits": self.total_commits or 0,
            "total_pull_requests": self.total_pull_requests or 0,
            "total_issues": self.total_issues or 0,
            "total_reviews": self.total_reviews or 0,
            "total_contributions": self.total_contributions or 0,
            "contribution_streak": self.contribution_streak or 0,
            "longest_streak": self.longest_streak or 0,
            "top_languages": self.top_languages or [],
            "global_rank": self.global_rank,
            "is_verified": bool(self.is_verified),
            "last_fetched_at": self.last_fetched_at.isoformat() if self.last_fetched_at else None,
        }


# =============================================================================
# ACTIVITY
# =============================================================================

class ActivityRecord(Base):
    """Daily activity for one user"""
    __tablename__ = "activity_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    username = Column(String(39), nullable=False)
    date = Column(Date, nullable=False)

    # From the contribution calendar
    contributions = Column(Integer, default=0)
    contribution_level = Column(String(20), default=ContributionLevel.NONE.value)

    # From public events
    commits = Column(Integer, default=0)
    pull_requests = Column(Integer, default=0)
    issues = Column(Integer, default=0)
    reviews = Column(Integer, default=0)

    user = relationship("User", back_populates="activity_records")

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_activity_user_date"),
        Index("idx_activity_date", "date"),
        Index("idx_activity_username", "username"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "contributions": self.contributions or 0,
            "commits": self.commits or 0,
            "pull_requests": self.pull_requests or 0,
            "issues": self.issues or 0,
            "reviews": self.reviews or 0,
        }


# =============================================================================
# ANALYTICS SNAPSHOTS
# =============================================================================

class AnalyticsSnapshot(Base):
    """Computed analytics for one user over one period"""
    __tablename__ = "analytics_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    username = Column(String(39), nullable=False)

    period = Column(String(20), nullable=False)  # 7d, 30d, 90d, 365d, all_time
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)

    contributions = Column(JSON, default=dict)      # {commits, pull_requests, issues, reviews, total}
    repositories = Column(JSON, default=dict)       # {created, forked, total_stars, total_forks}
    languages = Column(JSON, default=list)          # [{name, bytes, percentage}]
    activity_patterns = Column(JSON, default=dict)  # {by_hour, by_day_of_week, by_month}
    collaboration = Column(JSON, default=dict)
    performance = Column(JSON, default=dict)
    activity_score = Column(Float, default=0.0)

    last_calculated_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="analytics_snapshots")

    __table_args__ = (
        UniqueConstraint("user_id", "period", name="uq_snapshot_user_period"),
        Index("idx_snapshot_username", "username"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "period": self.period,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "contributions": self.contributions or {},
            "repositories": self.repositories or {},
            "languages": self.languages or [],
            "activity_patterns": self.activity_patterns or {},
            "collaboration": self.collaboration or {},
            "performance": self.performance or {},
            "activity_score": self.activity_score or 0.0,
            "last_calculated_at": self.last_calculated_at.isoformat() if self.last_calculated_at else None,
        }
