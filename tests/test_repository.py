"""
Tests for the repository layer against an in-memory SQLite database.
"""

from datetime import date, datetime, timedelta

import pytest

from src.database import (
    AnalyticsSnapshot,
    GroupBy,
    RepositorySort,
    SortOrder,
    UserFilter,
    UserSortField,
    sort_column,
)
from tests.factories import NOW, make_contributions


# =============================================================================
# USERS
# =============================================================================

class TestUserQueries:
    """Test lookups, filters and sorting."""

    def test_find_by_username_is_case_insensitive(self, make_user, user_repo):
        make_user("Octocat")
        user = user_repo.find_by_username("OCTOCAT")
        assert user is not None
        assert user.username == "octocat"

    def test_find_by_github_id_or_username(self, make_user, user_repo):
        make_user("octocat", github_id=583231)
        assert user_repo.find_by_github_id_or_username(583231, "renamed").username == "octocat"
        assert user_repo.find_by_github_id_or_username(None, "octocat") is not None
        assert user_repo.find_by_github_id_or_username(1, "nobody") is None

    def test_save_recomputes_totals(self, make_user):
        user = make_user("octocat", total_commits=10, total_pull_requests=3, total_issues=2, total_reviews=1)
        assert user.total_contributions == 16

    def test_find_sorts_and_pages(self, make_user, user_repo):
        make_user("alice", followers=10)
        make_user("bob", followers=30)
        make_user("carol", followers=20)

        users = user_repo.find(UserFilter(), sort=UserSortField.FOLLOWERS, order=SortOrder.DESC)
        assert [u.username for u in users] == ["bob", "carol", "alice"]

        page = user_repo.find(UserFilter(), sort=UserSortField.FOLLOWERS, order=SortOrder.ASC, offset=1, limit=1)
        assert [u.username for u in page] == ["carol"]

    def test_ties_keep_insertion_order(self, make_user, user_repo):
        make_user("first", total_commits=5)
        make_user("second", total_commits=5)
        users = user_repo.find(UserFilter(), sort=UserSortField.TOTAL_COMMITS)
        assert [u.username for u in users] == ["first", "second"]

    def test_filters(self, make_user, user_repo):
        make_user("alice", location="Berlin, Germany", languages=[{"name": "Python", "percentage": 80.0}])
        make_user("bob", location="Paris", languages=[{"name": "Go", "percentage": 100.0}], total_commits=50)
        make_user("carol", location="berlin", is_active=False)

        def names(filters):
            return sorted(u.username for u in user_repo.find(filters))

        assert names(UserFilter(location="BERLIN")) == ["alice"]
        assert names(UserFilter(language="python")) == ["alice"]
        assert names(UserFilter(min_commits=20)) == ["bob"]
        assert names(UserFilter(search="ali")) == ["alice"]
        assert names(UserFilter(is_active=None, location="berlin")) == ["alice", "carol"]
        assert names(UserFilter(usernames=["BOB", "carol"])) == ["bob"]
        assert names(UserFilter(exclude_username="Alice")) == ["bob"]

    def test_search_treats_wildcards_literally(self, make_user, user_repo):
        make_user("under_score")
        make_user("underxscore")
        users = user_repo.find(UserFilter(search="under_"))
        assert [u.username for u in users] == ["under_score"]

    def test_unknown_sort_field_is_rejected(self):
        with pytest.raises(ValueError):
            sort_column("password")

    def test_count_greater_than(self, make_user, user_repo):
        make_user("alice", total_commits=100, location="Berlin")
        make_user("bob", total_commits=50, location="Paris")
        make_user("carol", total_commits=50, location="Berlin")
        make_user("dave", total_commits=10, location="Berlin")

        assert user_repo.count_greater_than(UserSortField.TOTAL_COMMITS, 50) == 1
        assert user_repo.count_greater_than(UserSortField.TOTAL_COMMITS, 10) == 3
        assert user_repo.count_greater_than(
            UserSortField.TOTAL_COMMITS, 10, UserFilter(location="berlin"),
        ) == 2

    def test_count_fetched_between(self, make_user, user_repo):
        make_user("recent", last_fetched_at=NOW - timedelta(days=2))
        make_user("old", last_fetched_at=NOW - timedelta(days=60))
        make_user("never", last_fetched_at=None)

        assert user_repo.count_fetched_between(NOW - timedelta(days=30)) == 1
        assert user_repo.count_fetched_between(NOW - timedelta(days=90), NOW - timedelta(days=30)) == 1


# =============================================================================
# AGGREGATIONS
# =============================================================================

class TestUserAggregations:
    """Test dashboard aggregates."""

    def test_aggregate_totals(self, make_user, user_repo):
        make_user("alice", total_commits=10, public_repos=2, followers=5)
        make_user("bob", total_commits=30, public_repos=4, followers=15)
        make_user("ghost", total_commits=1000, is_active=False)

        totals = user_repo.aggregate_totals()
        assert totals["total_users"] == 2
        assert totals["total_commits"] == 40
        assert totals["total_repositories"] == 6
        assert totals["avg_commits_per_user"] == 20.0
        assert totals["avg_followers_per_user"] == 10.0

    def test_aggregate_totals_empty(self, user_repo):
        totals = user_repo.aggregate_totals()
        assert totals["total_users"] == 0
        assert totals["avg_commits_per_user"] == 0.0

    def test_location_distribution(self, make_user, user_repo):
        make_user("a", location="Berlin", total_commits=10)
        make_user("b", location="Berlin", total_commits=30)
        make_user("c", location="Paris", total_commits=5)
        make_user("d", location="")

        locations = user_repo.location_distribution()
        assert locations[0] == {"name": "Berlin", "user_count": 2, "avg_commits": 20.0, "total_commits": 40}
        assert [loc["name"] for loc in locations] == ["Berlin", "Paris"]

    def test_language_distribution(self, make_user, user_repo):
        make_user("a", languages=[{"name": "Python", "percentage": 60.0}, {"name": "Go", "percentage": 40.0}])
        make_user("b", languages=[{"name": "Python", "percentage": 100.0}])

        languages = user_repo.language_distribution()
        assert languages[0] == {
            "name": "Python",
            "user_count": 2,
            "avg_percentage": 80.0,
            "total_percentage": 160.0,
        }
        assert languages[1]["name"] == "Go"

    def test_top_performers(self, make_user, user_repo):
        make_user("committer", total_commits=100)
        make_user("reviewer", total_commits=10, total_pull_requests=40)

        performers = user_repo.top_performers(limit=1)
        assert performers[0]["user"].username == "reviewer"
        assert performers[0]["performance_score"] == 130.0

    def test_top_repositories(self, make_user, user_repo):
        make_user("alice", recent_repos=[
            {"name": "small", "stargazers_count": 1, "forks_count": 9, "language": "Python"},
            {"name": "big", "stargazers_count": 100, "forks_count": 2, "language": "Go"},
        ])
        make_user("bob", recent_repos=[{"name": "mid", "stargazers_count": 50, "forks_count": 0, "language": "Python"}])

        by_stars = user_repo.top_repositories(sort=RepositorySort.STARS)
        assert [r["name"] for r in by_stars] == ["big", "mid", "small"]
        assert by_stars[0]["owner"]["username"] == "alice"

        by_forks = user_repo.top_repositories(sort=RepositorySort.FORKS, limit=1)
        assert by_forks[0]["name"] == "small"

        python = user_repo.top_repositories(language="python")
        assert [r["name"] for r in python] == ["mid", "small"]

    def test_find_similar(self, make_user, user_repo):
        me = make_user("me", location="Oslo", languages=[{"name": "Rust", "percentage": 100.0}])
        make_user("neighbour", location="Oslo")
        make_user("rustacean", location="Lima", languages=[{"name": "Rust", "percentage": 50.0}])
        make_user("stranger", location="Lima", languages=[{"name": "Ruby", "percentage": 50.0}])

        similar = sorted(u.username for u in user_repo.find_similar(me))
        assert similar == ["neighbour", "rustacean"]


# =============================================================================
# ACTIVITY
# =============================================================================

class TestActivityRepository:
    """Test daily activity storage and period bucketing."""

    def test_calendar_rows_are_upserted(self, make_user, activity_repo):
        user = make_user("octocat")
        contributions = make_contributions([1, 2, 0])

        assert activity_repo.replace_from_calendar(user, contributions.calendar) == 3
        activity_repo.replace_from_calendar(user, make_contributions([5]).calendar)

        records = activity_repo.find_for_user(user.id)
        assert [r.contributions for r in records] == [5, 2, 0]
        assert records[0].date == date(2024, 6, 1)

    def test_event_counts_keep_calendar_counts(self, make_user, activity_repo):
        user = make_user("octocat")
        activity_repo.replace_from_calendar(user, make_contributions([4]).calendar)
        activity_repo.record_event_counts(user, {date(2024, 6, 1): {"commits": 3, "pull_requests": 1}})

        record = activity_repo.find_for_user(user.id)[0]
        assert record.contributions == 4
        assert record.commits == 3
        assert record.pull_requests == 1

    def test_find_for_user_range(self, make_user, activity_repo):
        user = make_user("octocat")
        activity_repo.replace_from_calendar(user, make_contributions([1, 2, 3, 4]).calendar)

        records = activity_repo.find_for_user(user.id, start=datetime(2024, 6, 2), end=datetime(2024, 6, 3, 23))
        assert [r.date.day for r in records] == [2, 3]

    def test_weekly_buckets_start_on_monday(self, make_user, activity_repo):
        user = make_user("octocat")
        # 2024-06-01 is a Saturday
        activity_repo.replace_from_calendar(user, make_contributions([1, 2, 0, 3, 4]).calendar)

        buckets = activity_repo.aggregate_by_period(
            datetime(2024, 5, 1), datetime(2024, 6, 30), group_by=GroupBy.WEEKLY,
        )
        assert [b["date"] for b in buckets] == ["2024-05-27", "2024-06-03"]
        assert [b["contributions"] for b in buckets] == [3, 7]
        assert buckets[0]["active_users"] == 1

    def test_monthly_buckets_and_user_filter(self, make_user, activity_repo):
        alice = make_user("alice")
        bob = make_user("bob")
        activity_repo.record_event_counts(alice, {date(2024, 5, 31): {"commits": 2}, date(2024, 6, 1): {"commits": 4}})
        activity_repo.record_event_counts(bob, {date(2024, 6, 2): {"commits": 6}})

        buckets = activity_repo.aggregate_by_period(datetime(2024, 5, 1), datetime(2024, 6, 30), group_by="monthly")
        assert [(b["date"], b["commits"], b["active_users"]) for b in buckets] == [
            ("2024-05", 2, 1),
            ("2024-06", 10, 2),
        ]
        june = buckets[1]
        assert (june["avg_commits"], june["max_commits"], june["min_commits"]) == (5.0, 6, 4)

        only_bob = activity_repo.aggregate_by_period(
            datetime(2024, 5, 1), datetime(2024, 6, 30), group_by=GroupBy.DAILY, usernames=["BOB"],
        )
        assert [b["date"] for b in only_bob] == ["2024-06-02"]


# =============================================================================
# SNAPSHOTS
# =============================================================================

class TestAnalyticsSnapshotRepository:
    """Test snapshot persistence."""

    def test_save_and_find(self, make_user, snapshot_repo):
        user = make_user("octocat")
        snapshot_repo.save(AnalyticsSnapshot(
            user_id=user.id,
            username=user.username,
            period="30d",
            start_date=NOW - timedelta(days=30),
            end_date=NOW,
            contributions={"commits": 5},
            last_calculated_at=NOW,
        ))

        found = snapshot_repo.find_one(user.id, "30d")
        assert found.contributions == {"commits": 5}
        assert found.to_dict()["last_calculated_at"] == NOW.isoformat()
        assert snapshot_repo.find_one(user.id, "7d") is None
