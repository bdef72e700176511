import aiohttp
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from github_activity.config import DEFAULT_API_URL, DEFAULT_REQUEST_TIMEOUT
from github_activity.domain.exceptions import GitHubApiError, RateLimitExceededException
from github_activity.domain.ports import ApiResponse

logger = logging.getLogger(__name__)

PER_PAGE = 100
# Limit concurrent connections to avoid overwhelming GitHub's servers
CONNECTOR_LIMIT = 10
API_VERSION = "2022-11-28"
USER_AGENT = "github-activity-core"


class GitHubRestClient:
    """
    Client for the GitHub REST API.
    Handles authentication headers, Link-header pagination and error translation.

    Implements the `GitHubClient` port. The client owns its aiohttp session unless
    one is passed in, and should be closed (or used as an async context manager).
    """

    def __init__(
        self,
        token: str,
        api_url: str = DEFAULT_API_URL,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
            "X-GitHub-Api-Version": API_VERSION,
        }
        self.api_url = api_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout, connect=10)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "GitHubRestClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.close()
        return False

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(limit=CONNECTOR_LIMIT),
            )
            self._owns_session = True
        return self._session

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.api_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Tuple[ApiResponse, Optional[str]]:
        """
        Sends a single request.

        Returns:
            Tuple of (response, next_page_url). next_page_url is None on the last page.

        Raises:
            RateLimitExceededException: On 403/429 with an exhausted quota.
            GitHubApiError: On any other non-2xx status.
        """
        session = self._get_session()
        query = {k: v for k, v in (params or {}).items() if v is not None}
        url = self._url(path)

        async with session.request(
            method, url, params=query or None, json=json, headers=self.headers, timeout=self.timeout,
        ) as response:
            headers = dict(response.headers)

            if response.status >= 400:
                raise await self._error_for(response, headers)

            data = None if response.status == 204 else await response.json(content_type=None)
            next_link = response.links.get("next") if response.links else None
            next_url = str(next_link.get("url")) if next_link else None

            return ApiResponse.build(response.status, data, headers), next_url

    @staticmethod
    async def _error_for(response: aiohttp.ClientResponse, headers: Dict[str, str]) -> GitHubApiError:
        try:
            body = await response.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            body = {"message": (await response.text())[:300]}
        message = body.get("message", "") if isinstance(body, dict) else ""

        lowered = {k.lower(): v for k, v in headers.items()}
        if response.status in (403, 429) and lowered.get("x-ratelimit-remaining") == "0":
            reset = lowered.get("x-ratelimit-reset")
            reset_at = (
                datetime.fromtimestamp(int(reset), tz=timezone.utc).isoformat()
                if reset and reset.isdigit()
                else None
            )
            logger.warning(f"GitHub rate limit exhausted ({response.status}). Resets at {reset_at}.")
            return RateLimitExceededException(reset_at=reset_at, status=response.status, data=body)

        return GitHubApiError(response.status, message, data=body, reason=response.reason or "")

    async def paginate(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        items_key: Optional[str] = None,
    ) -> List[Any]:
        """
        Follows `rel="next"` links until the last page and concatenates the items in server order.

        Args:
            items_key: For endpoints that wrap the page in an object
                (e.g. `{"total_count": 3, "repositories": [...]}`), the key holding the items.
        """
        items: List[Any] = []
        url: Optional[str] = path
        query = dict(params or {})
        query.setdefault("per_page", PER_PAGE)
        page = 0

        while url:
            response, next_url = await self.request("GET", url, params=query if page == 0 else None)
            page += 1

            data = response.data
            if items_key and isinstance(data, dict):
                data = data.get(items_key) or []
            if isinstance(data, list):
                items.extend(data)
            elif data:
                items.append(data)

            url = next_url

        logger.debug(f"Paginated {path}: {len(items)} items over {page} page(s).")
        return items

    async def get_rate_limit(self) -> Dict[str, Any]:
        response, _ = await self.request("GET", "/rate_limit")
        return response.data

    async def get_authenticated_user(self) -> ApiResponse:
        response, _ = await self.request("GET", "/user")
        return response

    async def list_repos_for_authenticated_user(self, **params: Any) -> List[Dict[str, Any]]:
        return await self.paginate("/user/repos", params)

    async def list_orgs_for_authenticated_user(self, **params: Any) -> List[Dict[str, Any]]:
        return await self.paginate("/user/orgs", params)

    async def list_repos_for_org(self, org: str, **params: Any) -> List[Dict[str, Any]]:
        return await self.paginate(f"/orgs/{org}/repos", params)

    async def list_repos_accessible_to_installation(self, **params: Any) -> List[Dict[str, Any]]:
        return await self.paginate("/installation/repositories", params, items_key="repositories")

    async def list_commits(self, owner: str, repo: str, **params: Any) -> List[Dict[str, Any]]:
        return await self.paginate(f"/repos/{owner}/{repo}/commits", params)

    async def list_installations_for_authenticated_user(self, **params: Any) -> List[Dict[str, Any]]:
        return await self.paginate("/user/installations", params, items_key="installations")
