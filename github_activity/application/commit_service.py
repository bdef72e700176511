import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple, Union

from github_activity.application.utils import (
    format_api_error,
    process_batches,
    repo_identifier,
    split_repo_full_name,
)
from github_activity.config import Settings
from github_activity.domain.exceptions import NoAuthenticationError
from github_activity.domain.models import AuthMethod, AuthMethodKind, Commit
from github_activity.domain.ports import GitHubClient
from github_activity.infrastructure.acl import GitHubTranslator

logger = logging.getLogger(__name__)

PER_PAGE = 100

Timestamp = Union[datetime, str]


def to_iso8601(value: Timestamp) -> str:
    """Formats a datetime as GitHub's `YYYY-MM-DDTHH:MM:SSZ`; strings pass through unchanged."""
    if isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


async def fetch_commits(
    client: GitHubClient,
    owner: str,
    repo: str,
    since: Timestamp,
    until: Timestamp,
    author: Optional[str] = None,
) -> List[Commit]:
    """
    Fetches every commit of one repository in the [since, until] window.

    Never raises: a failing repository is logged and yields no commits, so one
    repository cannot abort a multi-repository fetch.
    """
    full_name = repo_identifier(owner, repo)
    logger.debug(f"Fetching commits for {full_name} (author: {author or 'not specified'}).")

    try:
        raw_commits = await client.list_commits(
            owner,
            repo,
            since=to_iso8601(since),
            until=to_iso8601(until),
            author=author,
            per_page=PER_PAGE,
        )
        commits = [GitHubTranslator.commit_to_domain(raw, full_name) for raw in raw_commits]
    except Exception as e:
        logger.error(f"Error fetching commits for {full_name}: {format_api_error(e)}")
        return []

    if commits:
        logger.info(
            f"Fetched {len(commits)} commits for {full_name} "
            f"(first {commits[0].sha[:7]}, last {commits[-1].sha[:7]})."
        )
    else:
        logger.info(f"Fetched 0 commits for {full_name}.")
    return commits


def _batch_size_for(auth_method: AuthMethod, settings: Settings) -> int:
    if auth_method.kind == AuthMethodKind.GITHUB_APP:
        return settings.app_commit_batch_size
    return settings.oauth_commit_batch_size


async def _fetch_tier(
    client: GitHubClient,
    repos: Sequence[Tuple[str, str]],
    since: Timestamp,
    until: Timestamp,
    batch_size: int,
    author: Optional[str] = None,
    author_is_owner: bool = False,
) -> List[Commit]:
    async def fetch_one(owner_and_repo: Tuple[str, str]) -> List[Commit]:
        owner, repo = owner_and_repo
        return await fetch_commits(
            client, owner, repo, since, until, author=owner if author_is_owner else author,
        )

    per_repo = await process_batches(repos, batch_size, fetch_one)
    return [commit for commits in per_repo for commit in commits]


async def fetch_commits_across_repositories(
    client: GitHubClient,
    auth_method: Optional[AuthMethod],
    repo_full_names: Sequence[str],
    since: Timestamp,
    until: Timestamp,
    author_hint: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> List[Commit]:
    """
    Fetches commits from many repositories in concurrent batches.

    When `author_hint` matches no commit anywhere, the author filter is relaxed in
    tiers: first each repository's owner login is used as the author, then no author
    filter at all. A tier only runs when every earlier tier found nothing.

    Commits are ordered by repository (input order), then by the API's order.

    Raises:
        NoAuthenticationError: If `auth_method` is None. Checked before any request.
    """
    if auth_method is None:
        logger.error("No authentication method available for commit access.")
        raise NoAuthenticationError()

    settings = settings or Settings()
    batch_size = _batch_size_for(auth_method, settings)

    repos: List[Tuple[str, str]] = []
    for full_name in repo_full_names:
        owner, repo = split_repo_full_name(full_name)
        if not owner:
            logger.warning(f"Skipping malformed repository name: {full_name!r}")
            continue
        repos.append((owner, repo))

    logger.info(
        f"Fetching commits for {len(repos)} repositories via {auth_method.kind.value} "
        f"(batch size {batch_size}, author: {author_hint or 'not specified'})."
    )

    author_filter = author_hint or "none"
    commits = await _fetch_tier(client, repos, since, until, batch_size, author=author_hint)

    if not commits and author_hint and settings.author_fallback_enabled:
        logger.info(
            "No commits found with provided author name; retrying with the repo owner as author."
        )
        author_filter = "repository owner"
        commits = await _fetch_tier(client, repos, since, until, batch_size, author_is_owner=True)

        if not commits:
            logger.info("Still no commits found, retrying without author filter.")
            author_filter = "none"
            commits = await _fetch_tier(client, repos, since, until, batch_size)

    logger.info(
        f"All repository commits fetched: {len(commits)} commits from {len(repos)} repositories "
        f"(author filter: {author_filter})."
    )
    return commits
