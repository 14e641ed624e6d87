"""
Activity Scoring

Pure functions over GitHub activity data:
- Contribution streaks from the daily calendar
- Period summaries from public events (contributions, patterns, collaboration)
- Composite scores used by rankings and analytics

Nothing here touches the database or the network.
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)


# =============================================================================
# WEIGHTS
# =============================================================================

# Per-contribution weights for the period activity score
ACTIVITY_WEIGHTS = {
    "commits": 1,
    "pull_requests": 3,
    "issues": 2,
    "reviews": 2,
}

# Contributions needed to max out each quarter of the productivity score
PRODUCTIVITY_CAPS = {
    "commits": 100,
    "pull_requests": 20,
    "issues": 30,
    "reviews": 25,
}

# Top-contributor score per stored user
CONTRIBUTOR_WEIGHTS = {
    "total_commits": 1,
    "total_pull_requests": 3,
    "total_issues": 2,
    "total_reviews": 2,
    "followers": 0.1,
}

# Percentile weights for the overall ranking score
RANKING_WEIGHTS = {
    "commits": 0.3,
    "followers": 0.2,
    "repositories": 0.2,
    "contributions": 0.3,
}


# =============================================================================
# STREAKS
# =============================================================================

@dataclass
class StreakResult:
    current: int = 0
    longest: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"current": self.current, "longest": self.longest}


def calculate_streaks(days: Iterable[Any]) -> StreakResult:
    """
    Current and longest runs of consecutive days with contributions.

    days: objects or dicts with date and contribution count. The current
    streak is the run ending on the most recent day in the calendar.
    """
    counts = []
    for day in days:
        if isinstance(day, dict):
            counts.append((str(day.get("date")), day.get("contribution_count") or day.get("contributions") or 0))
        else:
            count = getattr(day, "contribution_count", None)
            if count is None:
                count = getattr(day, "contributions", 0)
            counts.append((str(day.date), count or 0))

    if not counts:
        return StreakResult()

    counts.sort(key=lambda item: item[0])

    longest = 0
    run = 0
    for _, count in counts:
        if count > 0:
            run += 1
            longest = max(longest, run)
        else:
            run = 0

    return StreakResult(current=run, longest=longest)


# =============================================================================
# EVENT SUMMARIES
# =============================================================================

def _event_type(event: Any) -> str:
    return event.get("type") if isinstance(event, dict) else event.type


def _event_payload(event: Any) -> Dict[str, Any]:
    payload = event.get("payload") if isinstance(event, dict) else event.payload
    return payload or {}


def _event_time(event: Any) -> Optional[datetime]:
    return event.get("created_at") if isinstance(event, dict) else event.created_at


def events_in_range(events: Iterable[Any], start: datetime, end: datetime) -> List[Any]:
    return [e for e in events if _event_time(e) is not None and start <= _event_time(e) <= end]


def count_event_contributions(event: Any) -> Dict[str, int]:
    """Contribution counts a single event represents."""
    event_type = _event_type(event)
    payload = _event_payload(event)
    counts = {"commits": 0, "pull_requests": 0, "issues": 0, "reviews": 0}

    if event_type == "PushEvent":
        counts["commits"] = payload.get("commits") or 1
    elif event_type == "PullRequestEvent" and payload.get("action") == "opened":
        counts["pull_requests"] = 1
    elif event_type == "IssuesEvent" and payload.get("action") == "opened":
        counts["issues"] = 1
    elif event_type == "PullRequestReviewEvent":
        counts["reviews"] = 1
    return counts


def summarize_contributions(events: Iterable[Any]) -> Dict[str, int]:
    totals = {"commits": 0, "pull_requests": 0, "issues": 0, "reviews": 0}
    for event in events:
        for key, value in count_event_contributions(event).items():
            totals[key] += value
    totals["total"] = sum(totals.values())
    return totals


def daily_contribution_counts(events: Iterable[Any]) -> Dict[date, Dict[str, int]]:
    """Per-day contribution counts, keyed by the event's UTC date."""
    days: Dict[date, Dict[str, int]] = defaultdict(lambda: {
        "commits": 0, "pull_requests": 0, "issues": 0, "reviews": 0,
    })
    for event in events:
        created_at = _event_time(event)
        if created_at is None:
            continue
        bucket = days[created_at.date()]
        for key, value in count_event_contributions(event).items():
            bucket[key] += value
    return dict(days)


def activity_patterns(events: Iterable[Any]) -> Dict[str, List[Dict[str, int]]]:
    """Event counts by hour, day of week (0 = Sunday) and month."""
    by_hour = [{"hour": h, "count": 0} for h in range(24)]
    by_day = [{"day": d, "count": 0} for d in range(7)]
    by_month = [{"month": m + 1, "count": 0} for m in range(12)]

    for event in events:
        created_at = _event_time(event)
        if created_at is None:
            continue
        by_hour[created_at.hour]["count"] += 1
        by_day[(created_at.weekday() + 1) % 7]["count"] += 1
        by_month[created_at.month - 1]["count"] += 1

    return {"by_hour": by_hour, "by_day_of_week": by_day, "by_month": by_month}


def collaboration_metrics(events: Iterable[Any], repositories: Iterable[Any]) -> Dict[str, int]:
    unique_repos = set()
    organization_contributions = 0

    for event in events:
        repo_name = event.get("repo_name") if isinstance(event, dict) else event.repo_name
        actor = event.get("actor_login") if isinstance(event, dict) else event.actor_login
        if not repo_name:
            continue
        unique_repos.add(repo_name)
        if "/" in repo_name and not repo_name.lower().startswith(f"{(actor or '').lower()}/"):
            organization_contributions += 1

    open_source = sum(1 for repo in repositories if not getattr(repo, "private", False))

    return {
        "unique_repositories": len(unique_repos),
        "organization_contributions": organization_contributions,
        "open_source_repositories": open_source,
    }


def repository_metrics(repositories: Iterable[Any], start: datetime, end: datetime) -> Dict[str, int]:
    metrics = {"created": 0, "forked": 0, "total_stars": 0, "total_forks": 0}
    for repo in repositories:
        if repo.created_at and start <= repo.created_at <= end:
            if repo.fork:
                metrics["forked"] += 1
            else:
                metrics["created"] += 1
        metrics["total_stars"] += repo.stargazers_count or 0
        metrics["total_forks"] += repo.forks_count or 0
    return metrics


def performance_averages(contributions: Dict[str, int], start: datetime, end: datetime) -> Dict[str, float]:
    days = max(1, math.ceil((end - start).total_seconds() / 86400))
    weeks = max(1, math.ceil(days / 7))
    months = max(1, math.ceil(days / 30))
    return {
        "average_commits_per_day": contributions.get("commits", 0) / days,
        "average_prs_per_week": contributions.get("pull_requests", 0) / weeks,
        "average_issues_per_month": contributions.get("issues", 0) / months,
        "productivity_score": productivity_score(contributions),
    }


# =============================================================================
# SCORES
# =============================================================================

def activity_score(contributions: Dict[str, int]) -> float:
    return float(sum(contributions.get(k, 0) * w for k, w in ACTIVITY_WEIGHTS.items()))


def productivity_score(contributions: Dict[str, int]) -> int:
    """0-100; each contribution type contributes up to 25 points."""
    score = sum(min((contributions.get(k, 0) or 0) / cap, 1) * 25 for k, cap in PRODUCTIVITY_CAPS.items())
    return round(score)


def shannon_diversity(shares: Sequence[float], base: float = math.e) -> float:
    """Shannon index over proportions; zero shares are ignored."""
    total = sum(shares)
    if total <= 0:
        return 0.0
    diversity = 0.0
    for share in shares:
        if share > 0:
            p = share / total
            diversity -= p * math.log(p, base)
    return round(diversity, 2)


def contribution_diversity(contributions: Dict[str, int]) -> float:
    return shannon_diversity([contributions.get(k, 0) for k in ACTIVITY_WEIGHTS])


def contributor_score(user: Any) -> int:
    return round(sum((getattr(user, field) or 0) * w for field, w in CONTRIBUTOR_WEIGHTS.items()))


def repository_score(repo: Dict[str, Any]) -> int:
    return (repo.get("stargazers_count") or 0) + (repo.get("forks_count") or 0) * 2


def overall_ranking_score(percentiles: Dict[str, float]) -> int:
    """Weighted mix of per-category percentiles."""
    weighted = 0.0
    total_weight = 0.0
    for category, weight in RANKING_WEIGHTS.items():
        if category in percentiles:
            weighted += percentiles[category] * weight
            total_weight += weight
    return round(weighted / total_weight) if total_weight else 0


def user_performance_scores(
    records: Sequence[Dict[str, int]],
    period_totals: Dict[str, int],
    user: Any,
) -> Dict[str, int]:
    """
    Period performance of one user, each on a 0-100 scale.

    consistency: share of recorded days with at least one commit
    productivity: weighted daily contributions, scaled
    engagement: followers, repositories and lifetime contributions
    overall: period contributions, followers and repositories
    """
    days = len(records)
    commits = period_totals.get("commits", 0)
    pull_requests = period_totals.get("pull_requests", 0)
    issues = period_totals.get("issues", 0)

    if days:
        active_days = sum(1 for r in records if (r.get("commits") or 0) > 0)
        consistency = round(active_days / days * 100)
        productivity = min(round((commits + pull_requests * 2 + issues) / days * 10), 100)
    else:
        consistency = 0
        productivity = 0

    followers = user.followers or 0
    public_repos = user.public_repos or 0
    lifetime_commits = user.total_commits or 0
    lifetime_prs = user.total_pull_requests or 0

    engagement = (
        min(followers / 100, 50)
        + min(public_repos / 20, 25)
        + min((lifetime_commits + lifetime_prs * 2) / 1000, 25)
    )

    return {
        "consistency": consistency,
        "productivity": productivity,
        "engagement": round(engagement),
        "overall": overall_performance_score(period_totals, user),
    }


def overall_performance_score(period_totals: Dict[str, int], user: Any) -> int:
    activity = min(
        (period_totals.get("commits", 0) + period_totals.get("pull_requests", 0) * 3
         + period_totals.get("issues", 0) * 2) / 100,
        40,
    )
    social = min((user.followers or 0) / 50, 30)
    repositories = min((user.public_repos or 0) / 10, 30)
    return round(activity + social + repositories)
