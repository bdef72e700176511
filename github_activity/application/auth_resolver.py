import logging
from typing import Awaitable, Callable, List, Optional

import aiohttp

from github_activity.application.utils import (
    READ_ORG_SCOPE,
    REPO_SCOPE,
    format_api_error,
    parse_scopes,
)
from github_activity.config import Settings
from github_activity.domain.exceptions import ConfigurationError, NoAuthenticationError
from github_activity.domain.models import (
    AppInstallation,
    AuthMethod,
    GitHubApp,
    InstallationToken,
    OAuth,
    OAuthScopeReport,
)
from github_activity.domain.ports import GitHubClient
from github_activity.infrastructure.acl import GitHubTranslator
from github_activity.infrastructure.app_auth import exchange_installation_token, generate_app_jwt
from github_activity.infrastructure.github_client import GitHubRestClient

logger = logging.getLogger(__name__)

GITHUB_WEB_URL = "https://github.com"

ClientFactory = Callable[[str], GitHubClient]
TokenExchanger = Callable[[str, int], Awaitable[InstallationToken]]


class AuthResolver:
    """
    Turns an authentication method into an authenticated GitHub client.

    OAuth tokens are used as-is. GitHub App installations need a short-lived
    installation token, minted by signing an app JWT and exchanging it with GitHub.
    """

    def __init__(
        self,
        settings: Settings,
        client_factory: Optional[ClientFactory] = None,
        token_exchanger: Optional[TokenExchanger] = None,
    ):
        self.settings = settings
        self.client_factory = client_factory or self._default_client_factory
        self.token_exchanger = token_exchanger or self._exchange_over_http

    def _default_client_factory(self, token: str) -> GitHubClient:
        return GitHubRestClient(
            token=token,
            api_url=self.settings.api_url,
            timeout=self.settings.request_timeout,
        )

    async def _exchange_over_http(self, app_jwt: str, installation_id: int) -> InstallationToken:
        async with aiohttp.ClientSession() as session:
            return await exchange_installation_token(
                session,
                app_jwt,
                installation_id,
                api_url=self.settings.api_url,
                timeout=self.settings.request_timeout,
            )

    async def resolve_client(self, auth_method: Optional[AuthMethod]) -> GitHubClient:
        """
        Raises:
            NoAuthenticationError: If no authentication method is given.
            ConfigurationError: If the App path is used without app id and private key.
            AuthenticationError: If GitHub rejects the installation token exchange.
        """
        if isinstance(auth_method, OAuth):
            logger.debug(f"Creating OAuth client (token length {len(auth_method.token)}).")
            return self.client_factory(auth_method.token)

        if isinstance(auth_method, GitHubApp):
            token = await self.mint_installation_token(auth_method.installation_id)
            return self.client_factory(token.token)

        logger.error("No authentication method available for GitHub access.")
        raise NoAuthenticationError()

    async def mint_installation_token(self, installation_id: int) -> InstallationToken:
        app_id = self.settings.github_app_id
        private_key = self.settings.github_app_private_key
        if not app_id or not private_key:
            logger.error(
                f"Missing GitHub App credentials (app id set: {bool(app_id)}, "
                f"private key set: {bool(private_key)})."
            )
            raise ConfigurationError(
                "GitHub App credentials are not configured. "
                "Set GITHUB_APP_ID and GITHUB_APP_PRIVATE_KEY_PKCS8."
            )

        app_jwt = generate_app_jwt(app_id, private_key)
        try:
            token = await self.token_exchanger(app_jwt, installation_id)
        except Exception as e:
            logger.error(f"Error creating installation token for {installation_id}: {e}")
            raise

        logger.info(f"Minted installation token for installation {installation_id}.")
        return token


async def list_app_installations(
    client: GitHubClient,
    settings: Optional[Settings] = None,
) -> List[AppInstallation]:
    """
    Lists the GitHub App installations visible to the authenticated user.

    When `settings` names an app (slug or id) only that app's installations are kept.
    API failures are logged and reported as no installations.
    """
    try:
        raw_installations = await client.list_installations_for_authenticated_user()
    except Exception as e:
        logger.error(f"Error getting GitHub App installations: {format_api_error(e)}")
        return []

    app_slug = settings.github_app_slug if settings else None
    app_id = settings.github_app_id if settings else None
    if app_slug or app_id:
        raw_installations = [
            inst for inst in raw_installations
            if inst.get("app_slug") == app_slug or str(inst.get("app_id")) == str(app_id)
        ]

    installations = [GitHubTranslator.installation_to_domain(inst) for inst in raw_installations]
    accounts = ", ".join(inst.account.login for inst in installations if inst.account)
    logger.info(f"Found {len(installations)} GitHub App installations: {accounts or 'none'}.")
    return installations


async def get_first_installation_id(
    client: GitHubClient,
    settings: Optional[Settings] = None,
) -> Optional[int]:
    installations = await list_app_installations(client, settings)
    if not installations:
        logger.info("No GitHub App installation found for this user.")
        return None

    first = installations[0]
    login = first.account.login if first.account else "unknown"
    logger.info(f"Using first GitHub App installation {first.id} (account: {login}).")
    return first.id


async def validate_oauth_scopes(client: GitHubClient) -> OAuthScopeReport:
    """Checks which of `repo` and `read:org` the token grants. Never raises."""
    try:
        response = await client.get_authenticated_user()
    except Exception as e:
        logger.error(f"Error validating OAuth token: {format_api_error(e)}")
        return OAuthScopeReport(is_valid=False, error=format_api_error(e))

    scopes = parse_scopes(response.headers.get("x-oauth-scopes"))
    login = (response.data or {}).get("login")
    report = OAuthScopeReport(
        is_valid=True,
        login=login,
        scopes=scopes,
        has_repo_scope=REPO_SCOPE in scopes,
        has_read_org_scope=READ_ORG_SCOPE in scopes,
    )
    logger.info(
        f"Validated OAuth token for {login}: scopes={scopes}, "
        f"repo={report.has_repo_scope}, read:org={report.has_read_org_scope}."
    )
    return report


def build_installation_management_url(
    installation_id: int,
    account_login: Optional[str] = None,
    account_type: Optional[str] = None,
) -> str:
    if account_type == "Organization" and account_login:
        return f"{GITHUB_WEB_URL}/organizations/{account_login}/settings/installations/{installation_id}"
    return f"{GITHUB_WEB_URL}/settings/installations/{installation_id}"
