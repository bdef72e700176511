import logging
from typing import Any, Dict, List, Optional

from github_activity.application.utils import (
    READ_ORG_SCOPE,
    REPO_SCOPE,
    check_rate_limit,
    deduplicate_by,
    format_api_error,
    parse_scopes,
    validate_scopes,
)
from github_activity.config import Settings
from github_activity.domain.exceptions import NoAuthenticationError, ScopeError
from github_activity.domain.models import AuthMethod, GitHubApp, OAuth, Repository
from github_activity.domain.ports import GitHubClient
from github_activity.infrastructure.acl import GitHubTranslator

logger = logging.getLogger(__name__)

PER_PAGE = 100


def _as_list(result: Any) -> List[Dict[str, Any]]:
    # Some listings come back as a single object rather than an array
    if isinstance(result, list):
        return result
    return [result] if result else []


async def _check_token_scopes(client: GitHubClient) -> None:
    """
    Logs who the token belongs to and enforces the `repo` scope.

    Raises:
        ScopeError: If the token was read successfully and lacks `repo`.
    """
    try:
        response = await client.get_authenticated_user()
    except Exception as e:
        logger.warning(f"Could not retrieve authenticated user info: {format_api_error(e)}")
        return

    user = response.data or {}
    scopes = parse_scopes(response.headers.get("x-oauth-scopes"))
    logger.info(
        f"Authenticated as {user.get('login')} (id={user.get('id')}, type={user.get('type')}), "
        f"token scopes: {scopes}."
    )

    if not validate_scopes(scopes, [REPO_SCOPE]).is_valid:
        logger.warning(
            "GitHub token is missing 'repo' scope. This will prevent access to private repositories."
        )
        raise ScopeError([REPO_SCOPE])

    if not validate_scopes(scopes, [READ_ORG_SCOPE]).is_valid:
        logger.warning(
            "GitHub token is missing 'read:org' scope. This may limit access to organization data."
        )


async def _list_organization_repositories(client: GitHubClient) -> List[Dict[str, Any]]:
    try:
        orgs = _as_list(await client.list_orgs_for_authenticated_user(per_page=PER_PAGE))
    except Exception as e:
        logger.warning(f"Failed to list user orgs: {format_api_error(e)}")
        return []

    logger.info(f"Fetched {len(orgs)} user organizations: {[o.get('login') for o in orgs]}.")

    raw_repos: List[Dict[str, Any]] = []
    for org in orgs:
        login = org.get("login")
        try:
            org_repos = _as_list(await client.list_repos_for_org(
                login, per_page=PER_PAGE, sort="updated", type="all",
            ))
        except Exception as e:
            logger.warning(f"Error fetching repos for org {login}: {format_api_error(e)}")
            continue
        logger.info(f"Fetched {len(org_repos)} repos for org {login}.")
        raw_repos.extend(org_repos)
    return raw_repos


async def list_repositories_oauth(
    client: GitHubClient,
    settings: Optional[Settings] = None,
) -> List[Repository]:
    """
    Lists every repository an OAuth user can see: the user's own, collaborator and
    organization-member repositories plus each organization's listing, deduplicated by
    `full_name`.

    Raises:
        ScopeError: If the token lacks the `repo` scope.
    """
    await check_rate_limit(client, settings, label="OAuth")
    await _check_token_scopes(client)

    raw_repos = _as_list(await client.list_repos_for_authenticated_user(
        per_page=PER_PAGE,
        sort="updated",
        visibility="all",
        affiliation="owner,collaborator,organization_member",
    ))
    logger.info(f"Fetched {len(raw_repos)} repos with combined affiliation.")

    raw_repos.extend(await _list_organization_repositories(client))

    repositories = [GitHubTranslator.repository_to_domain(raw) for raw in raw_repos]
    unique = deduplicate_by(repositories, lambda repo: repo.full_name)
    logger.info(
        f"Deduplicated repositories: {len(unique)} unique, "
        f"{len(repositories) - len(unique)} duplicates removed."
    )
    return unique


async def list_repositories_app(
    client: GitHubClient,
    settings: Optional[Settings] = None,
) -> List[Repository]:
    """Lists every repository the GitHub App installation behind `client` can access."""
    await check_rate_limit(client, settings, label="App")

    raw_repos = _as_list(await client.list_repos_accessible_to_installation(per_page=PER_PAGE))
    repositories = [GitHubTranslator.repository_to_domain(raw) for raw in raw_repos]

    private_count = sum(1 for repo in repositories if repo.private)
    logger.info(
        f"Fetched {len(repositories)} repositories from GitHub App installation "
        f"({private_count} private, {len(repositories) - private_count} public)."
    )
    return repositories


async def list_repositories(
    client: GitHubClient,
    auth_method: Optional[AuthMethod],
    settings: Optional[Settings] = None,
) -> List[Repository]:
    """
    Lists repositories with the strategy matching `auth_method`.

    Raises:
        NoAuthenticationError: If `auth_method` is None.
    """
    if isinstance(auth_method, GitHubApp):
        logger.info(f"Using GitHub App installation {auth_method.installation_id} for repository access.")
        return await list_repositories_app(client, settings)
    if isinstance(auth_method, OAuth):
        logger.info("Using OAuth token for repository access.")
        return await list_repositories_oauth(client, settings)

    logger.error("No authentication method available for repository access.")
    raise NoAuthenticationError()
