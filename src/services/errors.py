"""
Service-level errors.

Raised by the read paths and mapped to HTTP responses by the API layer.
"""

from typing import Optional

from src.github.client import GitHubAPIError, GitHubNotFoundError, GitHubRateLimitError


class AppError(Exception):
    """Base error carrying an HTTP status and a machine-readable type."""

    status_code = 500
    error_type = "internal_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_type: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_type is not None:
            self.error_type = error_type

    def to_dict(self):
        return {"type": self.error_type, "message": self.message}


class NotFoundError(AppError):
    status_code = 404
    error_type = "not_found"


class BadRequestError(AppError):
    status_code = 400
    error_type = "bad_request"


class ForbiddenError(AppError):
    status_code = 403
    error_type = "forbidden"


class RateLimitedError(AppError):
    status_code = 429
    error_type = "rate_limited"


def from_github_error(exc: GitHubAPIError) -> AppError:
    """Translate an upstream failure into the error reported to API clients."""
    if isinstance(exc, GitHubNotFoundError):
        return NotFoundError(str(exc))
    if isinstance(exc, GitHubRateLimitError):
        return RateLimitedError("GitHub API rate limit exceeded, try again later")
    if exc.status_code == 403:
        return ForbiddenError(f"GitHub denied access: {exc}")
    return AppError(str(exc), status_code=502, error_type="github_api_error")
