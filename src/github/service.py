"""
GitHub Service

Typed, cached access to upstream GitHub data. Every call except user search
goes through CacheCoordinator.get_or_compute, so repeated reads inside a
namespace TTL never reach the API. Not-found and rate-limit errors raised by
the client propagate unchanged and are never cached.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from src.cache.config import CacheNamespace, CacheTTL
from src.cache.coordinator import CacheCoordinator
from src.cache.keys import build_key, hash_params
from src.github.client import (
    GitHubAPIError,
    GitHubClient,
    GitHubNotFoundError,
    GitHubRateLimitError,
)
from src.github.models import (
    ContributionsDTO,
    EventDTO,
    LanguageStat,
    ProfileDTO,
    RepositoryDTO,
    SearchResult,
)
from src.utils.helpers import color_from_string, percentage

logger = logging.getLogger(__name__)

MAX_LANGUAGE_REPOS = 50

LANGUAGE_COLORS = {
    "JavaScript": "#f1e05a",
    "TypeScript": "#2b7489",
    "Python": "#3572A5",
    "Java": "#b07219",
    "C++": "#f34b7d",
    "C": "#555555",
    "C#": "#239120",
    "PHP": "#4F5D95",
    "Ruby": "#701516",
    "Go": "#00ADD8",
    "Rust": "#dea584",
    "Swift": "#ffac45",
    "Kotlin": "#F18E33",
    "Scala": "#c22d40",
    "R": "#198CE7",
    "MATLAB": "#e16737",
    "Shell": "#89e051",
    "HTML": "#e34c26",
    "CSS": "#1572B6",
    "Vue": "#2c3e50",
}

CONTRIBUTIONS_QUERY = """
query userContributionCalendar($username: String!) {
  user(login: $username) {
    contributionsCollection {
      contributionCalendar {
        totalContributions
        weeks {
          contributionDays {
            contributionCount
            date
            contributionLevel
          }
        }
      }
      totalCommitContributions
      totalIssueContributions
      totalPullRequestContributions
      totalPullRequestReviewContributions
      totalRepositoryContributions
    }
    repositories(first: 100, orderBy: {field: STARGAZERS, direction: DESC}) {
      nodes {
        name
        stargazerCount
        primaryLanguage {
          name
          color
        }
      }
    }
  }
}
"""


def language_color(name: str) -> str:
    return LANGUAGE_COLORS.get(name) or color_from_string(name)


class GitHubService:
    """
    Cached upstream client.

    Usage:
        service = GitHubService(client, coordinator)
        profile = await service.get_profile("octocat")
    """

    def __init__(
        self,
        client: GitHubClient,
        coordinator: CacheCoordinator,
        max_language_repos: int = MAX_LANGUAGE_REPOS,
        language_request_delay: float = 0.1,
    ):
        self.client = client
        self.coordinator = coordinator
        self.max_language_repos = max_language_repos
        self.language_request_delay = language_request_delay

    async def get_profile(self, username: str) -> ProfileDTO:
        async def fetch() -> ProfileDTO:
            logger.info(f"Fetching GitHub profile for: {username}")
            data = await self.client.get_user(username)
            return ProfileDTO.from_api(data)

        return await self.coordinator.get_or_compute(
            CacheNamespace.PROFILE,
            build_key("user_profile", username),
            fetch,
        )

    async def get_repositories(
        self,
        username: str,
        type: str = "owner",
        sort: str = "updated",
        direction: str = "desc",
        per_page: int = 100,
        page: int = 1,
    ) -> List[RepositoryDTO]:
        options = {"type": type, "sort": sort, "direction": direction, "per_page": per_page, "page": page}

        async def fetch() -> List[RepositoryDTO]:
            logger.info(f"Fetching repositories for: {username}")
            data = await self.client.list_user_repos(username, **options)
            repositories = [RepositoryDTO.from_api(repo) for repo in data]
            logger.info(f"Fetched {len(repositories)} repositories for: {username}")
            return repositories

        return await self.coordinator.get_or_compute(
            CacheNamespace.REPOS,
            build_key("user_repos", username, hash_params(options)),
            fetch,
        )

    async def get_events(self, username: str, per_page: int = 100, page: int = 1) -> List[EventDTO]:
        options = {"per_page": per_page, "page": page}

        async def fetch() -> List[EventDTO]:
            logger.info(f"Fetching events for: {username}")
            data = await self.client.list_user_events(username, **options)
            return [EventDTO.from_api(event) for event in data]

        return await self.coordinator.get_or_compute(
            CacheNamespace.EVENTS,
            build_key("user_events", username, hash_params(options)),
            fetch,
        )

    async def get_contributions(self, username: str) -> ContributionsDTO:
        async def fetch() -> ContributionsDTO:
            logger.info(f"Fetching contributions for: {username}")
            data = await self.client.graphql(CONTRIBUTIONS_QUERY, {"username": username})
            user = data.get("user")
            if not user:
                raise GitHubNotFoundError(f"GitHub user '{username}' not found")
            return ContributionsDTO.from_api(user)

        return await self.coordinator.get_or_compute(
            CacheNamespace.PROFILE,
            build_key("user_contributions", username),
            fetch,
            ttl_seconds=CacheTTL.CONTRIBUTIONS,
        )

    async def get_languages(self, username: str) -> List[LanguageStat]:
        """Byte-weighted language stats over the user's first owned repositories."""
        async def fetch() -> List[LanguageStat]:
            logger.info(f"Fetching language statistics for: {username}")
            repositories = await self.get_repositories(username, type="owner")

            totals: Dict[str, int] = {}
            for repo in repositories[:self.max_language_repos]:
                try:
                    languages = await self.client.list_repo_languages(username, repo.name)
                except GitHubRateLimitError:
                    raise
                except GitHubAPIError as e:
                    logger.warning(f"Failed to fetch languages for repo {repo.name}: {e}")
                    continue

                for name, size in languages.items():
                    totals[name] = totals.get(name, 0) + size

                if self.language_request_delay:
                    await asyncio.sleep(self.language_request_delay)

            total_bytes = sum(totals.values())
            stats = [
                LanguageStat(
                    name=name,
                    bytes=size,
                    percentage=percentage(size, total_bytes),
                    color=language_color(name),
                )
                for name, size in totals.items()
            ]
            stats.sort(key=lambda s: s.bytes, reverse=True)
            return stats

        return await self.coordinator.get_or_compute(
            CacheNamespace.PROFILE,
            build_key("user_languages", username),
            fetch,
            ttl_seconds=CacheTTL.LANGUAGES,
        )

    async def get_rate_limit(self) -> Dict[str, Any]:
        return await self.coordinator.get_or_compute(
            CacheNamespace.RATE_LIMIT,
            "github_rate_limit",
            self.client.get_rate_limit,
            ttl_seconds=CacheTTL.RATE_LIMIT_STATUS,
        )

    async def search_users(
        self,
        query: str,
        sort: str = "followers",
        order: str = "desc",
        per_page: int = 30,
        page: int = 1,
    ) -> SearchResult:
        logger.info(f"Searching GitHub users: {query}")
        data = await self.client.search_users(query, sort=sort, order=order, per_page=per_page, page=page)
        result = SearchResult.from_api(data)
        logger.info(f"Found {result.total_count} users for query: {query}")
        return result

    async def close(self):
        await self.client.close()


def create_github_service(
    coordinator: CacheCoordinator,
    settings: Optional[Any] = None,
    transport: Optional[Any] = None,
) -> GitHubService:
    """Build a service from application settings."""
    from src.utils.config import get_settings

    settings = settings or get_settings()
    client = GitHubClient(
        token=settings.GITHUB_TOKEN,
        base_url=settings.GITHUB_API_URL,
        graphql_url=settings.GITHUB_GRAPHQL_URL,
        timeout=settings.API_TIMEOUT,
        transport=transport,
    )
    return GitHubService(client, coordinator, max_language_repos=settings.MAX_LANGUAGE_REPOS)
