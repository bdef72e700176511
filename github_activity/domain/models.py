from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional, Union
from pydantic import BaseModel, Field, ConfigDict

from github_activity.domain.exceptions import NoAuthenticationError


class RepositoryOwner(BaseModel):
    model_config = ConfigDict(frozen=True)

    login: str = Field(..., description="Login name of the repository owner")
    type: Optional[str] = Field(None, description="'User' or 'Organization'")


class Repository(BaseModel):
    """
    Immutable snapshot of a GitHub repository as returned by the REST API.
    Identity is `full_name`; two repositories with the same `full_name` are the same repository.
    """
    # Enforces immutability: once created, fields cannot be modified.
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Numeric repository id from GitHub")
    name: str = Field(..., description="Name of the repository")
    full_name: str = Field(..., description="'owner/name'")
    owner: RepositoryOwner
    private: bool = False
    html_url: Optional[str] = None
    language: Optional[str] = None
    description: Optional[str] = None
    updated_at: Optional[datetime] = None


class GitIdentity(BaseModel):
    """Git author or committer recorded in the commit object itself."""
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    email: Optional[str] = None
    date: Optional[datetime] = None


class CommitDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    author: Optional[GitIdentity] = None
    committer: Optional[GitIdentity] = None
    message: str = ""


class GitHubUser(BaseModel):
    """GitHub account linked to a commit. Absent for commits whose email matches no account."""
    model_config = ConfigDict(frozen=True)

    login: str
    avatar_url: Optional[str] = None
    type: Optional[str] = None


class CommitStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    additions: int = Field(0, ge=0)
    deletions: int = Field(0, ge=0)
    total: int = Field(0, ge=0)


class RepositoryRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    full_name: str = Field(..., min_length=3)


class Commit(BaseModel):
    """
    Immutable commit from the commit-listing endpoint.

    `repository` is not part of the raw API payload: the fetch layer stamps it on
    so consumers can group commits without re-deriving which repository they came from.
    """
    model_config = ConfigDict(frozen=True)

    sha: str
    commit: CommitDetail
    html_url: str = ""
    author: Optional[GitHubUser] = None
    committer: Optional[GitHubUser] = None
    stats: Optional[CommitStats] = None
    repository: RepositoryRef


class InstallationAccount(BaseModel):
    model_config = ConfigDict(frozen=True)

    login: str
    type: Optional[str] = None
    avatar_url: Optional[str] = None


class AppInstallation(BaseModel):
    """One GitHub App grant on a user or organization account."""
    model_config = ConfigDict(frozen=True)

    id: int
    account: Optional[InstallationAccount] = None
    app_slug: str = ""
    app_id: int = 0
    repository_selection: str = Field("all", description="'all' or 'selected'")
    target_type: str = ""


class InstallationToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    expires_at: Optional[datetime] = None


class AuthMethodKind(str, Enum):
    OAUTH = "oauth"
    GITHUB_APP = "github_app"


class OAuth(BaseModel):
    """Authenticate as a user with an OAuth bearer token."""
    model_config = ConfigDict(frozen=True)

    kind: Literal[AuthMethodKind.OAUTH] = AuthMethodKind.OAUTH
    token: str = Field(..., min_length=1, repr=False)


class GitHubApp(BaseModel):
    """Authenticate as a GitHub App installation."""
    model_config = ConfigDict(frozen=True)

    kind: Literal[AuthMethodKind.GITHUB_APP] = AuthMethodKind.GITHUB_APP
    installation_id: int


AuthMethod = Union[OAuth, GitHubApp]


def resolve_auth_method(
    access_token: Optional[str] = None,
    installation_id: Optional[int] = None,
) -> AuthMethod:
    """
    Picks the authentication method for a request.

    An installation id wins over an OAuth token when both are present.

    Raises:
        NoAuthenticationError: If neither credential is supplied.
    """
    if installation_id:
        return GitHubApp(installation_id=installation_id)
    if access_token:
        return OAuth(token=access_token)
    raise NoAuthenticationError()


class RateLimitStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    limit: int = Field(..., ge=0)
    remaining: int = Field(..., ge=0)
    reset_epoch_seconds: int

    @property
    def used_percent(self) -> float:
        if self.limit == 0:
            return 0.0
        return (self.limit - self.remaining) / self.limit * 100

    @property
    def reset_at(self) -> datetime:
        return datetime.fromtimestamp(self.reset_epoch_seconds, tz=timezone.utc)


class TokenScopeCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    requested: List[str]
    missing: List[str]
    is_valid: bool


class OAuthScopeReport(BaseModel):
    """Outcome of probing an OAuth token with a "who am I" call."""
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    login: Optional[str] = None
    scopes: List[str] = Field(default_factory=list)
    has_repo_scope: bool = False
    has_read_org_scope: bool = False
    error: Optional[str] = None
