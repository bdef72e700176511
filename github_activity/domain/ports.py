"""Port: the GitHub REST capability set, implemented by infrastructure and by test doubles."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol


@dataclass(frozen=True)
class ApiResponse:
    """Body and headers of a single REST response. Header names are lower-cased."""

    status: int
    data: Any
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def build(cls, status: int, data: Any, headers: Optional[Mapping[str, str]] = None) -> "ApiResponse":
        return cls(status, data, {k.lower(): v for k, v in (headers or {}).items()})


class GitHubClient(Protocol):
    """The subset of the GitHub REST API the activity core depends on.

    Every `list_*` method pages through the whole result set and returns the
    concatenated items in server order.
    """

    async def get_rate_limit(self) -> Dict[str, Any]:
        """Return the raw `GET /rate_limit` body."""
        ...

    async def get_authenticated_user(self) -> ApiResponse:
        """Return `GET /user`, including the `x-oauth-scopes` header."""
        ...

    async def list_repos_for_authenticated_user(self, **params: Any) -> List[Dict[str, Any]]:
        ...

    async def list_orgs_for_authenticated_user(self, **params: Any) -> List[Dict[str, Any]]:
        ...

    async def list_repos_for_org(self, org: str, **params: Any) -> List[Dict[str, Any]]:
        ...

    async def list_repos_accessible_to_installation(self, **params: Any) -> List[Dict[str, Any]]:
        ...

    async def list_commits(self, owner: str, repo: str, **params: Any) -> List[Dict[str, Any]]:
        ...

    async def list_installations_for_authenticated_user(self, **params: Any) -> List[Dict[str, Any]]:
        ...

    async def close(self) -> None:
        """Release the underlying connection pool."""
        ...
