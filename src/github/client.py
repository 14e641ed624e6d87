"""
GitHub API Client

Async HTTP client for the GitHub REST and GraphQL APIs with:
- Connection pooling
- Bearer token authentication
- Automatic retry with exponential backoff on 5xx and timeouts
- Distinguished not-found and rate-limit errors (never retried)
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_GRAPHQL_URL = "https://api.github.com/graphql"


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    retryable_status_codes: tuple = (500, 502, 503, 504)


class GitHubAPIError(Exception):
    """Error response from the GitHub API."""
    def __init__(self, message: str, status_code: int = None, response: dict = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class GitHubNotFoundError(GitHubAPIError):
    """The requested user or resource does not exist."""
    def __init__(self, message: str, response: dict = None):
        super().__init__(message, status_code=404, response=response)


class GitHubRateLimitError(GitHubAPIError):
    """The API quota is exhausted; retry after reset_at."""
    def __init__(self, message: str, reset_at: Optional[datetime] = None, status_code: int = 429):
        super().__init__(message, status_code=status_code)
        self.reset_at = reset_at


def _rate_limit_reset(response: httpx.Response) -> Optional[datetime]:
    reset = response.headers.get("x-ratelimit-reset")
    if not reset:
        return None
    try:
        return datetime.fromtimestamp(int(reset), tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError):
        return None


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    return (
        response.status_code == 403
        and response.headers.get("x-ratelimit-remaining") == "0"
    )


def _error_body(response: httpx.Response) -> Optional[dict]:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return {"message": response.text}


class GitHubClient:
    """
    Async client for the GitHub API.

    Usage:
        client = GitHubClient(token="ghp_...")

        user = await client.get_user("octocat")
        repos = await client.list_user_repos("octocat", type="owner")

        await client.close()
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = GITHUB_API_URL,
        graphql_url: str = GITHUB_GRAPHQL_URL,
        retry_config: Optional[RetryConfig] = None,
        max_connections: int = 20,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize GitHub client.

        Args:
            token: Personal access token (optional, unauthenticated quota is small)
            base_url: REST API root
            graphql_url: GraphQL endpoint
            retry_config: Retry configuration (optional)
            max_connections: Maximum concurrent connections
            timeout: Request timeout in seconds
            transport: Custom httpx transport (tests)
        """
        self.graphql_url = graphql_url
        self.retry_config = retry_config or RetryConfig()

        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "github-analytics-service",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        else:
            logger.warning("No GitHub token configured, using unauthenticated rate limits")

        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections // 2,
            ),
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

        self._closed = False

    # =========================================================================
    # Request plumbing
    # =========================================================================

    async def _make_request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make a single HTTP request."""
        logger.debug(f"{method} {url}")

        response = await self._client.request(method, url, params=params, json=json)

        if _is_rate_limited(response):
            reset_at = _rate_limit_reset(response)
            raise GitHubRateLimitError(
                f"GitHub rate limit exceeded (resets at {reset_at.isoformat() if reset_at else 'unknown'})",
                reset_at=reset_at,
                status_code=response.status_code,
            )

        if response.status_code == 404:
            raise GitHubNotFoundError(f"Not found: {url}", response=_error_body(response))

        if response.status_code >= 400:
            body = _error_body(response) or {}
            raise GitHubAPIError(
                f"API request failed: {response.status_code} {body.get('message', '')}".strip(),
                status_code=response.status_code,
                response=body,
            )

        return response.json()

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make request with automatic retry on failure."""
        if self._closed:
            raise GitHubAPIError("Client is closed")

        last_exception = None
        delay = self.retry_config.initial_delay

        for attempt in range(self.retry_config.max_retries + 1):
            try:
                return await self._make_request(method, url, params=params, json=json)

            except GitHubRateLimitError:
                raise

            except GitHubAPIError as e:
                last_exception = e

                if e.status_code not in self.retry_config.retryable_status_codes:
                    raise

                if attempt < self.retry_config.max_retries:
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.retry_config.max_retries + 1}): {e}. "
                        f"Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * self.retry_config.exponential_base, self.retry_config.max_delay)

            except httpx.TimeoutException as e:
                last_exception = GitHubAPIError(f"Request timed out: {e}")

                if attempt < self.retry_config.max_retries:
                    logger.warning(f"Timeout (attempt {attempt + 1}). Retrying in {delay}s...")
                    await asyncio.sleep(delay)
                    delay = min(delay * self.retry_config.exponential_base, self.retry_config.max_delay)

            except httpx.HTTPError as e:
                last_exception = GitHubAPIError(f"HTTP error: {e}")

                if attempt < self.retry_config.max_retries:
                    logger.warning(f"HTTP error (attempt {attempt + 1}). Retrying in {delay}s...")
                    await asyncio.sleep(delay)
                    delay = min(delay * self.retry_config.exponential_base, self.retry_config.max_delay)

        raise last_exception

    async def get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request_with_retry("GET", url, params=params)

    # =========================================================================
    # REST endpoints
    # =========================================================================

    async def get_user(self, username: str) -> Dict[str, Any]:
        return await self.get(f"/users/{username}")

    async def list_user_repos(
        self,
        username: str,
        type: str = "owner",
        sort: str = "updated",
        direction: str = "desc",
        per_page: int = 100,
        page: int = 1,
    ) -> List[Dict[str, Any]]:
        return await self.get(
            f"/users/{username}/repos",
            params={
                "type": type,
                "sort": sort,
                "direction": direction,
                "per_page": per_page,
                "page": page,
            },
        )

    async def list_user_events(
        self,
        username: str,
        per_page: int = 100,
        page: int = 1,
    ) -> List[Dict[str, Any]]:
        return await self.get(
            f"/users/{username}/events/public",
            params={"per_page": per_page, "page": page},
        )

    async def list_repo_languages(self, owner: str, repo: str) -> Dict[str, int]:
        return await self.get(f"/repos/{owner}/{repo}/languages")

    async def search_users(
        self,
        query: str,
        sort: str = "followers",
        order: str = "desc",
        per_page: int = 30,
        page: int = 1,
    ) -> Dict[str, Any]:
        return await self.get(
            "/search/users",
            params={"q": query, "sort": sort, "order": order, "per_page": per_page, "page": page},
        )

    async def get_rate_limit(self) -> Dict[str, Any]:
        data = await self.get("/rate_limit")
        return data.get("rate") or {}

    # =========================================================================
    # GraphQL
    # =========================================================================

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run a GraphQL query and return its data.

        GraphQL reports most failures in an "errors" array with HTTP 200;
        those are mapped onto the same exception types as REST failures.
        """
        result = await self._request_with_retry(
            "POST",
            self.graphql_url,
            json={"query": query, "variables": variables or {}},
        )

        errors = result.get("errors") or []
        if errors:
            messages = "; ".join(e.get("message", "unknown error") for e in errors)
            types = {e.get("type") for e in errors}
            if "NOT_FOUND" in types or "Could not resolve to a User" in messages:
                raise GitHubNotFoundError(messages, response=result)
            if "RATE_LIMITED" in types:
                raise GitHubRateLimitError(messages)
            raise GitHubAPIError(f"GraphQL error: {messages}", response=result)

        return result.get("data") or {}

    async def close(self):
        """Close the HTTP client."""
        if not self._closed:
            await self._client.aclose()
            self._closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
