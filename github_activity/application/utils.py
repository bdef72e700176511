"""
Shared helpers for the GitHub services: rate-limit checks, token scopes,
repository names, deduplication, batched concurrency and error formatting.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Hashable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from github_activity.config import DEFAULT_LOW_RATE_LIMIT_RATIO, Settings
from github_activity.domain.exceptions import GitHubApiError
from github_activity.domain.models import RateLimitStatus, TokenScopeCheck
from github_activity.domain.ports import GitHubClient

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

REPO_SCOPE = "repo"
READ_ORG_SCOPE = "read:org"


async def check_rate_limit(
    client: GitHubClient,
    settings: Optional[Settings] = None,
    label: str = "",
) -> Optional[RateLimitStatus]:
    """
    Reads the core REST quota. Advisory only: never raises, returns None on failure.
    """
    auth_label = f" ({label})" if label else ""
    ratio = settings.low_rate_limit_ratio if settings else DEFAULT_LOW_RATE_LIMIT_RATIO

    try:
        data = await client.get_rate_limit()
        core = data["resources"]["core"]
        status = RateLimitStatus(
            limit=core["limit"],
            remaining=core["remaining"],
            reset_epoch_seconds=core["reset"],
        )
    except Exception as e:
        logger.warning(f"Failed to check GitHub API rate limits{auth_label}: {format_api_error(e)}")
        return None

    logger.info(
        f"GitHub API rate limit status{auth_label}: {status.remaining}/{status.limit} remaining "
        f"({status.used_percent:.1f}% used), resets at {status.reset_at.isoformat()}."
    )
    if status.remaining < status.limit * ratio:
        logger.warning(
            f"GitHub API rate limit is running low{auth_label}: {status.remaining} remaining "
            f"until {status.reset_at.isoformat()}."
        )
    return status


def parse_scopes(header_value: Optional[str]) -> List[str]:
    """Splits an `x-oauth-scopes` header ("repo, read:org") into scope names."""
    if not header_value:
        return []
    return [scope.strip() for scope in header_value.split(",") if scope.strip()]


def validate_scopes(have: Iterable[str], required: Sequence[str] = (REPO_SCOPE,)) -> TokenScopeCheck:
    granted = set(have)
    missing = [scope for scope in required if scope not in granted]
    return TokenScopeCheck(requested=list(required), missing=missing, is_valid=not missing)


def repo_identifier(owner: str, repo: str) -> str:
    return f"{owner}/{repo}"


def split_repo_full_name(full_name: Any) -> Tuple[str, str]:
    """Returns (owner, repo), or ("", "") unless the name has exactly two non-empty parts."""
    if not full_name or not isinstance(full_name, str):
        return "", ""
    parts = full_name.split("/")
    if len(parts) != 2 or not all(parts):
        return "", ""
    return parts[0], parts[1]


def deduplicate_by(items: Iterable[T], key_fn: Callable[[T], Hashable]) -> List[T]:
    """Drops later items whose key was already seen; order of first occurrences is kept."""
    seen = set()
    unique: List[T] = []
    total = 0
    for item in items:
        total += 1
        key = key_fn(item)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)

    removed = total - len(unique)
    if removed > 0:
        logger.info(f"Removed {removed} duplicate items ({total} -> {len(unique)}).")
    return unique


async def process_batches(
    items: Sequence[T],
    batch_size: int,
    async_fn: Callable[[T], Awaitable[R]],
) -> List[R]:
    """
    Runs `async_fn` over `items` in fixed-size batches.

    Batches run one after another; items inside a batch run concurrently. Results are
    returned in input order regardless of completion order.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    if not items:
        return []

    results: List[R] = []
    total_batches = (len(items) + batch_size - 1) // batch_size
    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        logger.debug(f"Processing batch {start // batch_size + 1}/{total_batches} ({len(batch)} items).")
        results.extend(await asyncio.gather(*(async_fn(item) for item in batch)))
    return results


def format_api_error(error: Any) -> str:
    """Renders any error raised while talking to GitHub as a user-facing message."""
    if error is None:
        return "Unknown GitHub API error"

    if isinstance(error, GitHubApiError):
        if error.status == 401:
            return "GitHub authentication failed. Please sign in again."
        if error.status == 403:
            return "Access denied by GitHub. You may not have permission or have exceeded rate limits."
        if error.status == 404:
            return "GitHub resource not found. The repository or resource may not exist or you lack permission."
        message = error.message
        if not message and isinstance(error.data, dict):
            message = error.data.get("message", "")
        if message:
            return f"GitHub API error: {message}"
        return f"GitHub API error: {error.status} {error.reason}".strip()

    if isinstance(error, BaseException):
        return f"GitHub error: {error}"

    return f"GitHub error: {error!s}"
