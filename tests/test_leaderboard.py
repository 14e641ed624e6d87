"""
Tests for cached leaderboards and live per-user rankings.
"""

from unittest.mock import patch

import pytest

from src.cache import CacheNamespace, CacheTTL
from src.services import BadRequestError, LeaderboardService, NotFoundError


@pytest.fixture
def leaderboard(user_repo, coordinator):
    return LeaderboardService(user_repo, coordinator)


@pytest.fixture
def ranked_users(make_user):
    make_user("alice", total_commits=300, followers=10, public_repos=5, location="Berlin",
              languages=[{"name": "Python", "percentage": 90.0}])
    make_user("bob", total_commits=200, followers=300, public_repos=50, location="Paris",
              languages=[{"name": "Go", "percentage": 100.0}])
    make_user("carol", total_commits=100, followers=20, public_repos=1, location="Berlin",
              languages=[{"name": "Python", "percentage": 60.0}, {"name": "Go", "percentage": 40.0}])


@pytest.mark.asyncio
class TestLeaderboard:
    """Test leaderboard pages and their cache keys."""

    async def test_ranks_by_category(self, leaderboard, ranked_users):
        board = await leaderboard.get_leaderboard("commits")

        assert [u["username"] for u in board["users"]] == ["alice", "bob", "carol"]
        first = board["users"][0]
        assert first["rank"] == 1
        assert first["category_value"] == 300
        assert first["percentile"] == 100
        assert board["total_count"] == 3
        assert board["location"] is None

    async def test_followers_category(self, leaderboard, ranked_users):
        board = await leaderboard.get_leaderboard("followers")
        assert board["users"][0]["username"] == "bob"

    async def test_pages_continue_ranks(self, leaderboard, ranked_users):
        board = await leaderboard.get_leaderboard("commits", page=2, limit=2)

        assert [(u["username"], u["rank"]) for u in board["users"]] == [("carol", 3)]
        assert board["pagination"]["has_prev_page"] is True

    async def test_filters(self, leaderboard, ranked_users):
        berlin = await leaderboard.get_leaderboard("commits", location="berlin")
        assert [u["username"] for u in berlin["users"]] == ["alice", "carol"]

        go = await leaderboard.get_leaderboard("commits", language="go")
        assert [u["username"] for u in go["users"]] == ["bob", "carol"]

    async def test_repeat_call_is_served_from_cache(self, leaderboard, user_repo, ranked_users):
        with patch.object(user_repo, "find", wraps=user_repo.find) as find:
            first = await leaderboard.get_leaderboard("commits", location="Berlin")
            second = await leaderboard.get_leaderboard("commits", location="Berlin")

        assert first is second
        assert find.call_count == 1

    async def test_every_parameter_is_part_of_the_key(self, leaderboard, user_repo, coordinator, ranked_users):
        with patch.object(user_repo, "find", wraps=user_repo.find) as find:
            await leaderboard.get_leaderboard("commits")
            await leaderboard.get_leaderboard("commits", location="Berlin")
            await leaderboard.get_leaderboard("commits", language="Python")
            await leaderboard.get_leaderboard("commits", page=2)
            await leaderboard.get_leaderboard("commits", period="monthly")
            await leaderboard.get_leaderboard("followers")

        assert find.call_count == 6
        assert len(coordinator.store(CacheNamespace.LEADERBOARD).keys()) == 6

    async def test_filters_differing_only_in_punctuation_do_not_share_a_page(self, leaderboard, make_user):
        make_user("cpp", total_commits=10, languages=[{"name": "F*", "percentage": 100.0}])
        make_user("csharp", total_commits=20, languages=[{"name": "F#", "percentage": 100.0}])

        f_star = await leaderboard.get_leaderboard("commits", language="F*")
        f_sharp = await leaderboard.get_leaderboard("commits", language="F#")

        assert [u["username"] for u in f_star["users"]] == ["cpp"]
        assert [u["username"] for u in f_sharp["users"]] == ["csharp"]

    async def test_missing_filters_differ_from_literal_defaults(self, leaderboard, user_repo, ranked_users):
        with patch.object(user_repo, "find", wraps=user_repo.find) as find:
            await leaderboard.get_leaderboard("commits")
            global_board = await leaderboard.get_leaderboard("commits", location="global", language="all")

        assert find.call_count == 2
        assert global_board["users"] == []

    async def test_expired_page_is_recomputed(self, leaderboard, user_repo, clock, make_user, ranked_users):
        first = await leaderboard.get_leaderboard("commits")
        make_user("dave", total_commits=1000)

        clock.advance(CacheTTL.LEADERBOARD_PAGE - 1)
        assert await leaderboard.get_leaderboard("commits") is first

        clock.advance(1)
        fresh = await leaderboard.get_leaderboard("commits")
        assert fresh["users"][0]["username"] == "dave"

    async def test_invalid_category(self, leaderboard):
        with pytest.raises(BadRequestError):
            await leaderboard.get_leaderboard("karma")

    async def test_stats(self, leaderboard, ranked_users):
        stats = await leaderboard.get_stats()

        overview = stats["overview"]
        assert overview["total_users"] == 3
        assert overview["average_commits_per_user"] == 200
        assert stats["top_countries"][0] == {"name": "Berlin", "user_count": 2}
        assert {lang["name"] for lang in stats["top_languages"]} == {"Python", "Go"}
        assert len(stats["recent_users"]) == 3

    async def test_top_contributors_skip_zero_values(self, leaderboard, make_user):
        make_user("reviewer", total_reviews=7)
        make_user("committer", total_reviews=0)

        result = await leaderboard.get_top_contributors("reviews")

        assert [c["username"] for c in result["contributors"]] == ["reviewer"]
        assert result["contributors"][0]["category_value"] == 7

    async def test_top_repositories(self, leaderboard, make_user):
        make_user("alice", recent_repos=[
            {"name": "a", "full_name": "alice/a", "stargazers_count": 5, "forks_count": 5, "language": "Go"},
            {"name": "b", "full_name": "alice/b", "stargazers_count": 9, "forks_count": 0, "language": "Go"},
        ])

        by_stars = await leaderboard.get_top_repositories("stars")
        assert [r["name"] for r in by_stars["repositories"]] == ["b", "a"]
        assert by_stars["repositories"][1]["score"] == 15

        with pytest.raises(BadRequestError):
            await leaderboard.get_top_repositories("watchers")


class TestUserRanking:
    """Test live rankings, which bypass the cache."""

    def test_rankings(self, leaderboard, ranked_users):
        result = leaderboard.get_user_ranking("carol")

        rankings = result["rankings"]
        assert rankings["commits"]["rank"] == 3
        assert rankings["followers"]["rank"] == 2
        assert rankings["location"]["rank"] == 2
        assert rankings["location"]["total"] == 2
        assert rankings["location"]["location_name"] == "Berlin"
        assert 0 < result["overall_score"] <= 100

    def test_selected_and_unknown_categories(self, leaderboard, ranked_users):
        result = leaderboard.get_user_ranking("alice", categories=["commits", " followers", "karma"])
        assert set(result["rankings"]) == {"commits", "followers", "location"}

    def test_unknown_user(self, leaderboard):
        with pytest.raises(NotFoundError):
            leaderboard.get_user_ranking("ghost")

    def test_ranking_is_not_cached(self, leaderboard, coordinator, ranked_users):
        leaderboard.get_user_ranking("alice")
        assert coordinator.store(CacheNamespace.LEADERBOARD).keys() == []
