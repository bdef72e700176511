from datetime import datetime
from typing import Any, Dict, Optional

from github_activity.domain.models import (
    AppInstallation,
    Commit,
    CommitDetail,
    CommitStats,
    GitHubUser,
    GitIdentity,
    InstallationAccount,
    Repository,
    RepositoryOwner,
    RepositoryRef,
)


def _parse_datetime(raw_date: Optional[str]) -> Optional[datetime]:
    if not raw_date:
        return None
    return datetime.fromisoformat(raw_date.replace("Z", "+00:00"))


class GitHubTranslator:
    """
    Anti-corruption layer that translates raw GitHub REST JSON payloads into domain models.
    """

    @staticmethod
    def repository_to_domain(raw_repo: Dict[str, Any]) -> Repository:
        """
        Transforms a raw repository object from any repository-listing endpoint into a Repository.

        Args:
            raw_repo (Dict[str, Any]): Repository JSON from `/user/repos`, `/orgs/{org}/repos`
                or `/installation/repositories`.

        Returns:
            Repository: The immutable domain snapshot.
        """
        owner_data = raw_repo.get('owner') or {}
        name = raw_repo.get('name', '')
        full_name = raw_repo.get('full_name') or f"{owner_data.get('login', '')}/{name}"

        return Repository(
            id=raw_repo.get('id', 0),
            name=name,
            full_name=full_name,
            owner=RepositoryOwner(
                login=owner_data.get('login', ''),
                type=owner_data.get('type'),
            ),
            private=bool(raw_repo.get('private', False)),
            html_url=raw_repo.get('html_url'),
            language=raw_repo.get('language'),
            description=raw_repo.get('description'),
            updated_at=_parse_datetime(raw_repo.get('updated_at')),
        )

    @staticmethod
    def _git_identity(raw: Optional[Dict[str, Any]]) -> Optional[GitIdentity]:
        if not raw:
            return None
        return GitIdentity(
            name=raw.get('name'),
            email=raw.get('email'),
            date=_parse_datetime(raw.get('date')),
        )

    @staticmethod
    def _github_user(raw: Optional[Dict[str, Any]]) -> Optional[GitHubUser]:
        # Unlinked commits carry null (or an empty object) instead of an account
        if not raw or not raw.get('login'):
            return None
        return GitHubUser(login=raw['login'], avatar_url=raw.get('avatar_url'), type=raw.get('type'))

    @staticmethod
    def commit_to_domain(raw_commit: Dict[str, Any], repository_full_name: str) -> Commit:
        """
        Transforms a raw commit from `/repos/{owner}/{repo}/commits` into a Commit and
        stamps the repository it was listed from.
        """
        detail = raw_commit.get('commit') or {}
        stats = raw_commit.get('stats')

        return Commit(
            sha=raw_commit.get('sha', ''),
            commit=CommitDetail(
                author=GitHubTranslator._git_identity(detail.get('author')),
                committer=GitHubTranslator._git_identity(detail.get('committer')),
                message=detail.get('message') or '',
            ),
            html_url=raw_commit.get('html_url') or '',
            author=GitHubTranslator._github_user(raw_commit.get('author')),
            committer=GitHubTranslator._github_user(raw_commit.get('committer')),
            stats=CommitStats(**stats) if stats else None,
            repository=RepositoryRef(full_name=repository_full_name),
        )

    @staticmethod
    def installation_to_domain(raw_installation: Dict[str, Any]) -> AppInstallation:
        """
        Transforms a raw installation from `/user/installations` into an AppInstallation.
        Installations without an account are kept with `account=None`.
        """
        account_data = raw_installation.get('account')
        account = None
        if isinstance(account_data, dict) and account_data.get('login'):
            account = InstallationAccount(
                login=account_data['login'],
                type=account_data.get('type'),
                avatar_url=account_data.get('avatar_url'),
            )

        return AppInstallation(
            id=raw_installation.get('id', 0),
            account=account,
            app_slug=raw_installation.get('app_slug') or '',
            app_id=raw_installation.get('app_id') or 0,
            repository_selection=raw_installation.get('repository_selection') or 'all',
            target_type=raw_installation.get('target_type') or '',
        )
