"""
Tests for the user service: cold fetches, stale-while-refresh reads,
bulk updates, rankings and analytics snapshots.
"""

from datetime import timedelta

import pytest

from src.cache import CacheNamespace, FreshnessPolicy, build_key
from src.github import EventDTO, GitHubAPIError, GitHubNotFoundError, RepositoryDTO, SearchResult
from src.services import AppError, BadRequestError, NotFoundError, UserService
from src.services.users import merge_user_data
from tests.factories import NOW, make_contributions, make_profile, repo_payload


@pytest.fixture
def user_service(fake_github, user_repo, activity_repo, snapshot_repo, invalidator, wall_clock):
    return UserService(
        fake_github,
        user_repo,
        activity_repo,
        snapshot_repo,
        invalidator,
        freshness=FreshnessPolicy(),
        clock=wall_clock,
        request_delay=0,
    )


def stale(minutes: int = 11):
    return NOW - timedelta(minutes=minutes)


# =============================================================================
# MERGING UPSTREAM DATA
# =============================================================================

class TestMergeUserData:
    """Test flattening of upstream DTOs into user columns."""

    def test_full_merge(self):
        data = merge_user_data(
            make_profile("octocat"),
            contributions=make_contributions([1, 2, 0, 3, 4], pull_requests=2),
            languages=[],
            repositories=[
                RepositoryDTO.from_api(repo_payload("old", updated_at="2020-01-01T00:00:00Z")),
                RepositoryDTO.from_api(repo_payload("new", updated_at="2024-06-01T00:00:00Z")),
            ],
        )

        assert data["total_commits"] == 10
        assert data["total_pull_requests"] == 2
        assert data["contribution_streak"] == 2
        assert data["longest_streak"] == 2
        assert [r["name"] for r in data["recent_repos"]] == ["new", "old"]
        assert "top_languages" not in data

    def test_profile_only(self):
        data = merge_user_data(make_profile("octocat"))
        assert data["username"] == "octocat"
        assert "total_commits" not in data


# =============================================================================
# PROFILE READS
# =============================================================================

@pytest.mark.asyncio
class TestProfileReads:
    """Test the read path over the store and GitHub."""

    async def test_cold_fetch_persists_everything(self, user_service, fake_github, user_repo, activity_repo):
        data = await user_service.get_user_profile("octocat")

        profile = data["profile"]
        assert profile["username"] == "octocat"
        assert profile["total_commits"] == 10
        assert profile["top_languages"][0]["name"] == "Python"
        assert profile["last_fetched_at"] == NOW.isoformat()
        assert "email" not in profile

        stored = user_repo.find_by_username("octocat")
        assert stored.recent_repos[0]["name"] == "hello-world"
        assert len(activity_repo.find_for_user(stored.id)) == 5
        fake_github.get_profile.assert_awaited_once_with("octocat")

    async def test_cold_fetch_unknown_user(self, user_service, fake_github):
        fake_github.get_profile.side_effect = GitHubNotFoundError("Not found: /users/ghost")

        with pytest.raises(NotFoundError):
            await user_service.get_user_profile("ghost")

    async def test_cold_fetch_tolerates_partial_failures(self, user_service, fake_github):
        fake_github.get_languages.side_effect = GitHubAPIError("boom", status_code=500)

        data = await user_service.get_user_profile("octocat")
        assert data["profile"]["top_languages"] == []
        assert data["profile"]["total_commits"] == 10

    async def test_fresh_user_is_served_from_store(self, user_service, fake_github, make_user):
        make_user("octocat", followers=1, languages=[{"name": "Go", "percentage": 100.0}])

        data = await user_service.get_user_profile("octocat")

        assert data["profile"]["followers"] == 1
        fake_github.get_profile.assert_not_awaited()

    async def test_stale_user_served_then_refreshed(self, user_service, fake_github, make_user, user_repo):
        make_user("octocat", followers=1, last_fetched_at=stale())

        data = await user_service.get_user_profile("octocat")
        assert data["profile"]["followers"] == 1

        await user_service.wait_for_refreshes()

        refreshed = user_repo.find_by_username("octocat")
        assert refreshed.followers == 9000
        assert refreshed.last_fetched_at == NOW

    async def test_incomplete_user_is_refreshed(self, user_service, fake_github, make_user):
        make_user("octocat", total_commits=0)

        await user_service.get_user_profile("octocat")
        await user_service.wait_for_refreshes()

        fake_github.get_profile.assert_awaited_once()

    async def test_one_background_refresh_per_user(self, user_service, fake_github, make_user):
        make_user("octocat", last_fetched_at=stale())

        await user_service.get_user_profile("octocat")
        await user_service.get_user_profile("OCTOCAT")
        await user_service.wait_for_refreshes()

        assert fake_github.get_profile.await_count == 1

    async def test_stale_refresh_lands_when_contributions_fail(self, user_service, fake_github, make_user, user_repo):
        make_user("octocat", followers=1, total_commits=42, last_fetched_at=stale(),
                  languages=[{"name": "Go", "percentage": 100.0}])
        fake_github.get_contributions.side_effect = GitHubAPIError("Bad credentials", status_code=401)

        await user_service.get_user_profile("octocat")
        await user_service.wait_for_refreshes()

        stored = user_repo.find_by_username("octocat")
        assert stored.followers == 9000
        assert stored.last_fetched_at == NOW
        assert stored.total_commits == 42

    async def test_failed_refresh_keeps_stored_data(self, user_service, fake_github, make_user, user_repo):
        make_user("octocat", followers=1, last_fetched_at=stale())
        fake_github.get_profile.side_effect = GitHubAPIError("upstream down", status_code=502)

        data = await user_service.get_user_profile("octocat")
        await user_service.wait_for_refreshes()

        assert data["profile"]["followers"] == 1
        stored = user_repo.find_by_username("octocat")
        assert stored.followers == 1
        assert stored.last_fetched_at == stale()

    async def test_optional_sections(self, user_service, fake_github, make_user):
        make_user("octocat")
        fake_github.get_events.side_effect = GitHubAPIError("boom", status_code=500)

        data = await user_service.get_user_profile("octocat", include_repos=True, include_activity=True)

        assert data["repositories"][0]["name"] == "hello-world"
        assert data["recent_activity"] == []


# =============================================================================
# REFRESHES
# =============================================================================

@pytest.mark.asyncio
class TestRefresh:
    """Test forced and bulk refreshes."""

    async def test_refresh_invalidates_user_cache_and_ranks(self, user_service, coordinator, make_user):
        make_user("alice", total_commits=100)
        make_user("octocat", last_fetched_at=stale())
        coordinator.store(CacheNamespace.PROFILE).set(build_key("user_profile", "octocat"), "cached")

        user = await user_service.refresh_user("Octocat")

        assert coordinator.store(CacheNamespace.PROFILE).get(build_key("user_profile", "octocat")) is None
        assert user.total_commits == 10
        assert user.global_rank == 2

    async def test_refresh_propagates_upstream_errors(self, user_service, fake_github):
        fake_github.get_contributions.side_effect = GitHubAPIError("boom", status_code=500)

        with pytest.raises(GitHubAPIError):
            await user_service.refresh_user("octocat")

    async def test_bulk_update(self, user_service, fake_github, make_user, coordinator):
        make_user("fresh")
        coordinator.store(CacheNamespace.LEADERBOARD).set("leaderboard:x", 1)

        def profile(username):
            if username == "ghost":
                raise GitHubNotFoundError("Not found: /users/ghost")
            return make_profile(username)

        fake_github.get_profile.side_effect = profile

        results = await user_service.bulk_update_users(["fresh", "newbie", "ghost"])

        assert results["total"] == 3
        assert [s["username"] for s in results["skipped"]] == ["fresh"]
        assert [s["username"] for s in results["success"]] == ["newbie"]
        assert results["failed"][0]["username"] == "ghost"
        assert results["failed"][0]["status_code"] == 404
        assert coordinator.store(CacheNamespace.LEADERBOARD).keys() == []

    async def test_bulk_update_force(self, user_service, make_user):
        make_user("fresh")
        results = await user_service.bulk_update_users(["fresh"], force_update=True)
        assert [s["username"] for s in results["success"]] == ["fresh"]
        assert results["skipped"] == []


# =============================================================================
# LISTING AND SEARCH
# =============================================================================

class TestListing:
    """Test listing, stats and positions over stored users."""

    def test_list_users_paginates(self, user_service, make_user):
        for i, commits in enumerate([30, 20, 10]):
            make_user(f"user{i}", total_commits=commits)

        result = user_service.list_users(page=1, limit=2)

        assert [u["username"] for u in result["users"]] == ["user0", "user1"]
        assert result["pagination"]["total_pages"] == 2
        assert result["pagination"]["has_next_page"] is True
        assert result["filters"]["total_results"] == 3

    def test_stats_and_positions(self, user_service, make_user):
        make_user("alice", total_commits=100, followers=5)
        make_user("bob", total_commits=50, followers=50)

        stats = user_service.get_user_stats("bob")
        assert stats["rankings"]["by_commits"] == 2
        assert stats["rankings"]["by_followers"] == 1

        positions = user_service.get_leaderboard_positions("bob")
        assert positions["total_commits"] == {"rank": 2, "total": 2, "percentile": 50, "value": 50}

    def test_unknown_user(self, user_service):
        with pytest.raises(NotFoundError):
            user_service.get_user_stats("ghost")

    def test_update_contribution_streak(self, user_service, make_user, activity_repo, user_repo):
        user = make_user("octocat")
        activity_repo.replace_from_calendar(user, make_contributions([1, 1, 1, 0, 2]).calendar)

        assert user_service.update_contribution_streak("octocat") == {"current": 1, "longest": 3}
        assert user_repo.find_by_username("octocat").longest_streak == 3


@pytest.mark.asyncio
class TestSearch:
    """Test GitHub search enriched with stored data."""

    async def test_short_query_is_rejected(self, user_service, fake_github):
        with pytest.raises(BadRequestError):
            await user_service.search_users(" a ")
        fake_github.search_users.assert_not_awaited()

    async def test_results_are_enriched(self, user_service, fake_github, make_user):
        make_user("octocat", total_commits=77)
        fake_github.search_users.return_value = SearchResult(
            total_count=2,
            incomplete_results=False,
            users=[{"username": "Octocat"}, {"username": "stranger"}],
        )

        result = await user_service.search_users("octo")

        octocat, stranger = result["users"]
        assert octocat["in_database"] is True
        assert octocat["total_commits"] == 77
        assert stranger["in_database"] is False

    async def test_upstream_failure_maps_to_app_error(self, user_service, fake_github):
        fake_github.search_users.side_effect = GitHubAPIError("boom", status_code=500)

        with pytest.raises(AppError) as exc_info:
            await user_service.search_users("octo")
        assert exc_info.value.status_code == 502


# =============================================================================
# ANALYTICS SNAPSHOTS
# =============================================================================

@pytest.mark.asyncio
class TestUserAnalytics:
    """Test period analytics and snapshot freshness."""

    @pytest.fixture
    def events(self, fake_github):
        fake_github.get_events.return_value = [
            EventDTO(
                id="1", type="PushEvent", actor_login="octocat", repo_name="octocat/hello-world",
                payload={"commits": 2}, created_at=NOW - timedelta(days=1),
            ),
            EventDTO(
                id="2", type="PullRequestEvent", actor_login="octocat", repo_name="github/docs",
                payload={"action": "opened"}, created_at=NOW - timedelta(days=2),
            ),
            EventDTO(
                id="3", type="PushEvent", actor_login="octocat", repo_name="octocat/hello-world",
                payload={"commits": 9}, created_at=NOW - timedelta(days=40),
            ),
        ]

    async def test_snapshot_is_calculated_and_reused(self, user_service, fake_github, make_user, wall_clock, events):
        make_user("octocat")

        first = await user_service.calculate_user_analytics("octocat", "30d")
        assert first["contributions"] == {"commits": 2, "pull_requests": 1, "issues": 0, "reviews": 0, "total": 3}
        assert first["activity_score"] == 5.0
        assert first["collaboration"]["organization_contributions"] == 1

        wall_clock.advance(minutes=29)
        second = await user_service.calculate_user_analytics("octocat", "30d")
        assert second["last_calculated_at"] == NOW.isoformat()
        assert fake_github.get_events.await_count == 1

        wall_clock.advance(minutes=2)
        third = await user_service.calculate_user_analytics("octocat", "30d")
        assert third["last_calculated_at"] == wall_clock().isoformat()
        assert fake_github.get_events.await_count == 2

    async def test_event_counts_are_recorded(self, user_service, make_user, activity_repo, events):
        user = make_user("octocat")
        await user_service.calculate_user_analytics("octocat", "7d")

        records = activity_repo.find_for_user(user.id)
        assert sum(r.commits for r in records) == 2
        assert sum(r.pull_requests for r in records) == 1

    async def test_unknown_user(self, user_service):
        with pytest.raises(NotFoundError):
            await user_service.calculate_user_analytics("ghost")
