"""
GitHub upstream access.

    client = GitHubClient(token=settings.GITHUB_TOKEN)
    service = GitHubService(client, coordinator)
    profile = await service.get_profile("octocat")
"""

from src.github.client import (
    GitHubAPIError,
    GitHubClient,
    GitHubNotFoundError,
    GitHubRateLimitError,
    RetryConfig,
)
from src.github.models import (
    ContributionDay,
    ContributionsDTO,
    EventDTO,
    LanguageStat,
    ProfileDTO,
    RepositoryDTO,
    SearchResult,
)
from src.github.service import GitHubService, create_github_service

__all__ = [
    "GitHubAPIError",
    "GitHubClient",
    "GitHubNotFoundError",
    "GitHubRateLimitError",
    "RetryConfig",
    "ContributionDay",
    "ContributionsDTO",
    "EventDTO",
    "LanguageStat",
    "ProfileDTO",
    "RepositoryDTO",
    "SearchResult",
    "GitHubService",
    "create_github_service",
]
