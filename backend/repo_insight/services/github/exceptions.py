"""Custom exceptions for GitHub API access."""

from __future__ import annotations


class GithubError(Exception):
    """Base exception for GitHub failures."""


class GithubConfigurationError(GithubError):
    """Raised when required configuration is missing."""


class GithubNotFoundError(GithubError):
    """Raised when the repository, branch or file does not exist."""


class GithubRateLimitError(GithubError):
    """Raised when the upstream service enforces a rate limit."""

    def __init__(self, message: str, retry_after: int | float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class GithubRetryableError(GithubError):
    """Raised for transient issues where retrying later may succeed."""
