"""
Freshness Policy

Decides whether a stored entity is recent enough to serve as-is, or whether
a read should trigger an opportunistic refresh from GitHub.

Two thresholds are kept separate: user profiles (refreshed on read after
10 minutes) and computed analytics snapshots (recalculated after 30
minutes).
"""

import logging
from datetime import datetime
from typing import Any, Optional

from src.utils.helpers import utcnow


logger = logging.getLogger(__name__)

PROFILE_REFRESH_THRESHOLD_SECONDS = 10 * 60
ANALYTICS_RECALC_THRESHOLD_SECONDS = 30 * 60


def is_fresh(
    last_fetched_at: Optional[datetime],
    threshold_seconds: float,
    now: Optional[datetime] = None,
) -> bool:
    """True iff now - last_fetched_at < threshold_seconds. No timestamp is never fresh."""
    if last_fetched_at is None:
        return False
    now = now or utcnow()
    age = (now - last_fetched_at).total_seconds()
    return age < threshold_seconds


class FreshnessPolicy:
    """Staleness thresholds for stored users and analytics snapshots."""

    def __init__(
        self,
        profile_threshold_seconds: float = PROFILE_REFRESH_THRESHOLD_SECONDS,
        analytics_threshold_seconds: float = ANALYTICS_RECALC_THRESHOLD_SECONDS,
    ):
        self.profile_threshold_seconds = profile_threshold_seconds
        self.analytics_threshold_seconds = analytics_threshold_seconds

    def is_profile_fresh(self, user: Any, now: Optional[datetime] = None) -> bool:
        return is_fresh(getattr(user, "last_fetched_at", None), self.profile_threshold_seconds, now)

    @staticmethod
    def is_profile_incomplete(user: Any) -> bool:
        """A user with neither language data nor a commit count was never fully fetched."""
        has_languages = bool(getattr(user, "top_languages", None))
        has_commits = bool(getattr(user, "total_commits", 0))
        return not has_languages and not has_commits

    def profile_needs_refresh(self, user: Any, now: Optional[datetime] = None) -> bool:
        if user is None:
            return False
        return not self.is_profile_fresh(user, now) or self.is_profile_incomplete(user)

    def analytics_needs_recalculation(self, snapshot: Any, now: Optional[datetime] = None) -> bool:
        if snapshot is None:
            return True
        return not is_fresh(
            getattr(snapshot, "last_calculated_at", None),
            self.analytics_threshold_seconds,
            now,
        )
