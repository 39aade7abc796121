from __future__ import annotations

from typing import Optional


class FixCacheError(Exception):
    """Base exception for all fix-cache errors."""

    code: str = "FIXCACHE_ERROR"


class ConfigurationError(FixCacheError):
    """Configuration validation failed; the service must not start."""

    code = "CONFIGURATION_ERROR"


class NotFoundError(FixCacheError):
    """An event referenced a repository with no stored metadata."""

    code = "NOT_FOUND"


class GitHubAPIError(FixCacheError):
    """GitHub answered with a non-retryable error."""

    code = "GITHUB_API_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientAPIError(GitHubAPIError):
    """Rate limiting or server errors persisted past the retry budget."""

    code = "GITHUB_TRANSIENT_ERROR"


class BatchLimitError(FixCacheError):
    """A single put_many call exceeded the storage transport's item limit."""

    code = "BATCH_LIMIT_EXCEEDED"


class WriteConflictError(FixCacheError):
    """Another writer committed a cache entry set since it was read."""

    code = "WRITE_CONFLICT"


class UnsupportedEventError(FixCacheError):
    """The webhook event kind is not one the service handles."""

    code = "UNSUPPORTED_EVENT"
