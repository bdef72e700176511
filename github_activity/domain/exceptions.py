from typing import Any, Optional, Sequence


class GitHubActivityException(Exception):
    """Base exception for all GitHub activity errors."""
    pass

class ConfigurationError(GitHubActivityException):
    """Raised when the GitHub App credentials are missing or unusable."""
    pass

class NoAuthenticationError(GitHubActivityException):
    """Raised when neither an OAuth token nor an installation id is available."""
    def __init__(self, message: str = "No GitHub authentication available. Please sign in again."):
        super().__init__(message)

class ScopeError(GitHubActivityException):
    """Raised when an OAuth token lacks a scope the caller depends on."""
    def __init__(self, missing: Sequence[str], message: Optional[str] = None):
        self.missing = list(missing)
        if message is None:
            message = (
                f"GitHub token is missing {', '.join(repr(s) for s in self.missing)} scope. "
                "Please re-authenticate with the necessary permissions."
            )
        super().__init__(message)

class AuthenticationError(GitHubActivityException):
    """Raised when GitHub rejects the installation token exchange."""
    pass

class GitHubApiError(GitHubActivityException):
    """Raised when the GitHub REST API answers with a non-2xx status."""
    def __init__(self, status: int, message: str = "", data: Any = None, reason: str = ""):
        self.status = status
        self.message = message
        self.data = data
        self.reason = reason
        super().__init__(f"HTTP {status}: {message or reason}")

class RateLimitExceededException(GitHubApiError):
    """Raised when the GitHub REST rate limit is exhausted."""
    def __init__(self, reset_at: Optional[str], status: int = 403, data: Any = None):
        self.reset_at = reset_at
        super().__init__(
            status,
            f"GitHub API rate limit exceeded. Resets at: {reset_at}",
            data=data,
            reason="rate limited",
        )
