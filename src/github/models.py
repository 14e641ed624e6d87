"""
GitHub data transfer objects.

Thin typed views over GitHub REST and GraphQL payloads. Each DTO is built
with from_api() and serialized back to a plain dict with to_dict() for
persistence and HTTP responses.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 GitHub timestamp into a naive UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class ProfileDTO:
    """Public GitHub profile."""
    github_id: int
    username: str
    avatar_url: str
    html_url: str
    name: Optional[str] = None
    email: Optional[str] = None
    bio: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    blog: Optional[str] = None
    twitter_username: Optional[str] = None
    public_repos: int = 0
    public_gists: int = 0
    followers: int = 0
    following: int = 0
    github_created_at: Optional[datetime] = None
    github_updated_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ProfileDTO":
        return cls(
            github_id=data["id"],
            username=data["login"],
            avatar_url=data.get("avatar_url") or "",
            html_url=data.get("html_url") or "",
            name=data.get("name"),
            email=data.get("email"),
            bio=data.get("bio"),
            company=data.get("company"),
            location=data.get("location"),
            blog=data.get("blog"),
            twitter_username=data.get("twitter_username"),
            public_repos=data.get("public_repos") or 0,
            public_gists=data.get("public_gists") or 0,
            followers=data.get("followers") or 0,
            following=data.get("following") or 0,
            github_created_at=_parse_datetime(data.get("created_at")),
            github_updated_at=_parse_datetime(data.get("updated_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["github_created_at"] = _isoformat(self.github_created_at)
        d["github_updated_at"] = _isoformat(self.github_updated_at)
        return d


@dataclass
class RepositoryDTO:
    """A repository owned by (or listed for) a user."""
    name: str
    full_name: str
    html_url: str
    description: Optional[str] = None
    private: bool = False
    fork: bool = False
    language: Optional[str] = None
    stargazers_count: int = 0
    forks_count: int = 0
    watchers_count: int = 0
    open_issues_count: int = 0
    size: int = 0
    topics: List[str] = field(default_factory=list)
    archived: bool = False
    pushed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RepositoryDTO":
        return cls(
            name=data["name"],
            full_name=data.get("full_name") or data["name"],
            html_url=data.get("html_url") or "",
            description=data.get("description"),
            private=bool(data.get("private")),
            fork=bool(data.get("fork")),
            language=data.get("language"),
            stargazers_count=data.get("stargazers_count") or 0,
            forks_count=data.get("forks_count") or 0,
            watchers_count=data.get("watchers_count") or 0,
            open_issues_count=data.get("open_issues_count") or 0,
            size=data.get("size") or 0,
            topics=list(data.get("topics") or []),
            archived=bool(data.get("archived")),
            pushed_at=_parse_datetime(data.get("pushed_at")),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        for key in ("pushed_at", "created_at", "updated_at"):
            d[key] = _isoformat(getattr(self, key))
        return d


def condense_payload(event_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only the payload fields the analytics read paths use."""
    payload = payload or {}
    if event_type == "PushEvent":
        return {
            "ref": payload.get("ref"),
            "size": payload.get("size"),
            "commits": len(payload.get("commits") or []),
        }
    if event_type == "PullRequestEvent":
        return {
            "action": payload.get("action"),
            "number": payload.get("number"),
            "title": (payload.get("pull_request") or {}).get("title"),
        }
    if event_type == "IssuesEvent":
        issue = payload.get("issue") or {}
        return {
            "action": payload.get("action"),
            "number": issue.get("number"),
            "title": issue.get("title"),
        }
    if event_type == "CreateEvent":
        return {"ref_type": payload.get("ref_type"), "ref": payload.get("ref")}
    if event_type == "ForkEvent":
        return {"forkee": (payload.get("forkee") or {}).get("full_name")}
    return payload


@dataclass
class EventDTO:
    """A public activity event."""
    id: str
    type: str
    actor_login: str
    repo_name: str
    payload: Dict[str, Any] = field(default_factory=dict)
    public: bool = True
    created_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "EventDTO":
        event_type = data.get("type") or "UnknownEvent"
        return cls(
            id=str(data.get("id")),
            type=event_type,
            actor_login=(data.get("actor") or {}).get("login", ""),
            repo_name=(data.get("repo") or {}).get("name", ""),
            payload=condense_payload(event_type, data.get("payload") or {}),
            public=bool(data.get("public", True)),
            created_at=_parse_datetime(data.get("created_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["created_at"] = _isoformat(self.created_at)
        return d


@dataclass
class ContributionDay:
    """One day of the contribution calendar."""
    date: str
    contribution_count: int
    contribution_level: str = "NONE"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ContributionsDTO:
    """Contribution totals and the last year of daily counts."""
    total_contributions: int = 0
    total_commits: int = 0
    total_issues: int = 0
    total_pull_requests: int = 0
    total_reviews: int = 0
    total_repositories: int = 0
    calendar: List[ContributionDay] = field(default_factory=list)
    top_repositories: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_api(cls, user: Dict[str, Any]) -> "ContributionsDTO":
        collection = user.get("contributionsCollection") or {}
        calendar = collection.get("contributionCalendar") or {}

        days = [
            ContributionDay(
                date=day["date"],
                contribution_count=day.get("contributionCount") or 0,
                contribution_level=day.get("contributionLevel") or "NONE",
            )
            for week in calendar.get("weeks") or []
            for day in week.get("contributionDays") or []
        ]

        repositories = (user.get("repositories") or {}).get("nodes") or []
        top_repositories = [
            {
                "name": repo.get("name"),
                "stars": repo.get("stargazerCount") or 0,
                "language": (repo.get("primaryLanguage") or {}).get("name"),
                "language_color": (repo.get("primaryLanguage") or {}).get("color"),
            }
            for repo in repositories
        ]

        return cls(
            total_contributions=calendar.get("totalContributions") or 0,
            total_commits=collection.get("totalCommitContributions") or 0,
            total_issues=collection.get("totalIssueContributions") or 0,
            total_pull_requests=collection.get("totalPullRequestContributions") or 0,
            total_reviews=collection.get("totalPullRequestReviewContributions") or 0,
            total_repositories=collection.get("totalRepositoryContributions") or 0,
            calendar=days,
            top_repositories=top_repositories,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LanguageStat:
    """Byte-weighted language usage across a user's repositories."""
    name: str
    bytes: int
    percentage: float
    color: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SearchResult:
    """Result page of a GitHub user search."""
    total_count: int
    incomplete_results: bool
    users: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "SearchResult":
        return cls(
            total_count=data.get("total_count") or 0,
            incomplete_results=bool(data.get("incomplete_results")),
            users=[
                {
                    "github_id": item.get("id"),
                    "username": item.get("login"),
                    "avatar_url": item.get("avatar_url"),
                    "html_url": item.get("html_url"),
                    "type": item.get("type"),
                    "score": item.get("score"),
                }
                for item in data.get("items") or []
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
