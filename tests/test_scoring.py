"""
Test Suite for Activity Scoring

Tests the pure calculations behind profiles, leaderboards and analytics:
- Contribution streaks
- Event summaries and activity patterns
- Composite scores
"""

import math
from datetime import date, datetime, timedelta
from types import SimpleNamespace

from src.github import EventDTO
from src.scoring import (
    StreakResult,
    activity_patterns,
    activity_score,
    calculate_streaks,
    collaboration_metrics,
    contribution_diversity,
    contributor_score,
    count_event_contributions,
    daily_contribution_counts,
    events_in_range,
    overall_ranking_score,
    performance_averages,
    productivity_score,
    repository_metrics,
    repository_score,
    shannon_diversity,
    summarize_contributions,
    user_performance_scores,
)
from tests.factories import make_contributions


def event(event_type, created_at, repo_name="octocat/hello-world", **payload):
    return EventDTO(
        id=f"{event_type}-{created_at.isoformat()}",
        type=event_type,
        actor_login="octocat",
        repo_name=repo_name,
        payload=payload,
        created_at=created_at,
    )


class TestStreaks:
    """Test contribution streak calculation."""

    def test_current_and_longest(self):
        """A gap resets the run; the current streak ends on the newest day."""
        result = calculate_streaks(make_contributions([1, 2, 0, 3, 4]).calendar)

        assert isinstance(result, StreakResult)
        assert result.longest == 2
        assert result.current == 2

    def test_current_streak_broken_by_latest_day(self):
        """No contributions on the newest day means no current streak."""
        result = calculate_streaks(make_contributions([1, 1, 1, 0]).calendar)
        assert result.to_dict() == {"current": 0, "longest": 3}

    def test_unordered_dict_days(self):
        """Days are ordered by date before counting."""
        days = [
            {"date": "2024-06-03", "contribution_count": 1},
            {"date": "2024-06-01", "contribution_count": 1},
            {"date": "2024-06-02", "contribution_count": 1},
        ]
        assert calculate_streaks(days).longest == 3

    def test_empty_calendar(self):
        assert calculate_streaks([]) == StreakResult(current=0, longest=0)


class TestEventSummaries:
    """Test contribution counting over public events."""

    def test_push_counts_commits(self):
        push = event("PushEvent", datetime(2024, 6, 10, 9), commits=3)
        assert count_event_contributions(push)["commits"] == 3

    def test_push_without_commit_list_counts_one(self):
        push = event("PushEvent", datetime(2024, 6, 10, 9))
        assert count_event_contributions(push)["commits"] == 1

    def test_only_opened_pull_requests_count(self):
        opened = event("PullRequestEvent", datetime(2024, 6, 10), action="opened")
        closed = event("PullRequestEvent", datetime(2024, 6, 10), action="closed")

        assert count_event_contributions(opened)["pull_requests"] == 1
        assert count_event_contributions(closed)["pull_requests"] == 0

    def test_summarize_contributions(self):
        events = [
            event("PushEvent", datetime(2024, 6, 10), commits=2),
            event("IssuesEvent", datetime(2024, 6, 10), action="opened"),
            event("PullRequestReviewEvent", datetime(2024, 6, 11)),
            event("WatchEvent", datetime(2024, 6, 11)),
        ]
        totals = summarize_contributions(events)
        assert totals == {"commits": 2, "pull_requests": 0, "issues": 1, "reviews": 1, "total": 4}

    def test_dict_events_are_accepted(self):
        totals = summarize_contributions([{"type": "PushEvent", "payload": {"commits": 5}}])
        assert totals["commits"] == 5

    def test_daily_counts(self):
        events = [
            event("PushEvent", datetime(2024, 6, 10, 1), commits=2),
            event("PushEvent", datetime(2024, 6, 10, 23), commits=1),
            event("PullRequestEvent", datetime(2024, 6, 11), action="opened"),
        ]
        days = daily_contribution_counts(events)

        assert days[date(2024, 6, 10)]["commits"] == 3
        assert days[date(2024, 6, 11)]["pull_requests"] == 1

    def test_events_in_range_is_inclusive(self):
        start = datetime(2024, 6, 1)
        end = datetime(2024, 6, 30)
        events = [
            event("PushEvent", start),
            event("PushEvent", end),
            event("PushEvent", end + timedelta(seconds=1)),
        ]
        assert len(events_in_range(events, start, end)) == 2

    def test_activity_patterns(self):
        """Day of week counts start at Sunday."""
        events = [
            event("PushEvent", datetime(2024, 6, 9, 14)),   # Sunday
            event("PushEvent", datetime(2024, 6, 10, 9)),   # Monday
            event("PushEvent", datetime(2024, 6, 10, 9)),
        ]
        patterns = activity_patterns(events)

        assert patterns["by_day_of_week"][0]["count"] == 1
        assert patterns["by_day_of_week"][1]["count"] == 2
        assert patterns["by_hour"][9]["count"] == 2
        assert patterns["by_month"][5] == {"month": 6, "count": 3}

    def test_collaboration_metrics(self):
        events = [
            event("PushEvent", datetime(2024, 6, 10), repo_name="octocat/hello-world"),
            event("PushEvent", datetime(2024, 6, 10), repo_name="github/docs"),
            event("PushEvent", datetime(2024, 6, 11), repo_name="github/docs"),
        ]
        repositories = [SimpleNamespace(private=False), SimpleNamespace(private=True)]

        metrics = collaboration_metrics(events, repositories)
        assert metrics == {
            "unique_repositories": 2,
            "organization_contributions": 2,
            "open_source_repositories": 1,
        }

    def test_repository_metrics(self):
        start = datetime(2024, 6, 1)
        end = datetime(2024, 6, 30)
        repositories = [
            SimpleNamespace(created_at=datetime(2024, 6, 5), fork=False, stargazers_count=3, forks_count=1),
            SimpleNamespace(created_at=datetime(2024, 6, 6), fork=True, stargazers_count=0, forks_count=0),
            SimpleNamespace(created_at=datetime(2020, 1, 1), fork=False, stargazers_count=10, forks_count=2),
        ]
        assert repository_metrics(repositories, start, end) == {
            "created": 1,
            "forked": 1,
            "total_stars": 13,
            "total_forks": 3,
        }


class TestScores:
    """Test composite scores."""

    def test_activity_score_weights(self):
        score = activity_score({"commits": 10, "pull_requests": 2, "issues": 1, "reviews": 0})
        assert score == 18.0

    def test_productivity_score_caps(self):
        """Each contribution type adds at most 25 points."""
        assert productivity_score({"commits": 1000}) == 25
        assert productivity_score({"commits": 100, "pull_requests": 20, "issues": 30, "reviews": 25}) == 100
        assert productivity_score({}) == 0

    def test_shannon_diversity(self):
        assert shannon_diversity([1, 1]) == round(math.log(2), 2)
        assert shannon_diversity([5, 0]) == 0.0
        assert shannon_diversity([]) == 0.0

    def test_contribution_diversity_prefers_mixed_activity(self):
        mixed = contribution_diversity({"commits": 5, "pull_requests": 5, "issues": 5, "reviews": 5})
        focused = contribution_diversity({"commits": 20})
        assert mixed > focused

    def test_contributor_score(self):
        user = SimpleNamespace(
            total_commits=100, total_pull_requests=10, total_issues=5, total_reviews=0, followers=20,
        )
        assert contributor_score(user) == 144

    def test_repository_score(self):
        assert repository_score({"stargazers_count": 10, "forks_count": 3}) == 16
        assert repository_score({}) == 0

    def test_overall_ranking_score_uses_present_categories(self):
        assert overall_ranking_score({"commits": 100, "followers": 50}) == 80
        assert overall_ranking_score({}) == 0

    def test_performance_averages(self):
        start = datetime(2024, 6, 1)
        averages = performance_averages(
            {"commits": 60, "pull_requests": 10, "issues": 3}, start, start + timedelta(days=30),
        )
        assert averages["average_commits_per_day"] == 2.0
        assert averages["average_prs_per_week"] == 2.0
        assert averages["average_issues_per_month"] == 3.0

    def test_user_performance_scores(self):
        records = [{"commits": 1}, {"commits": 0}, {"commits": 3}, {"commits": 0}]
        user = SimpleNamespace(followers=1000, public_repos=100, total_commits=5000, total_pull_requests=0)

        scores = user_performance_scores(records, {"commits": 4, "pull_requests": 1, "issues": 0}, user)

        assert scores["consistency"] == 50
        assert scores["productivity"] == 15
        assert scores["engagement"] == 20
        assert scores["overall"] == 30

    def test_user_performance_scores_without_records(self):
        user = SimpleNamespace(followers=0, public_repos=0, total_commits=0, total_pull_requests=0)
        scores = user_performance_scores([], {}, user)
        assert scores == {"consistency": 0, "productivity": 0, "engagement": 0, "overall": 0}
