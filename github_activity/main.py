import argparse
import asyncio
import os
import sys
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone

from github_activity.config import Settings
from github_activity.application.auth_resolver import AuthResolver
from github_activity.application.commit_service import fetch_commits_across_repositories
from github_activity.application.repository_service import list_repositories
from github_activity.domain.exceptions import GitHubActivityException
from github_activity.domain.models import resolve_auth_method

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 7


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarize GitHub commit activity.")
    parser.add_argument("--installation-id", type=int, default=None,
                        help="GitHub App installation id (defaults to GITHUB_INSTALLATION_ID)")
    parser.add_argument("--repo", action="append", default=[],
                        help="owner/name to include; repeatable (defaults to every visible repository)")
    parser.add_argument("--since", default=None, help="ISO 8601 start of the window")
    parser.add_argument("--until", default=None, help="ISO 8601 end of the window")
    parser.add_argument("--author", default=None, help="GitHub login or git author to filter by")
    return parser.parse_args(argv)


async def main(argv=None):
    # Settings.from_env loads the .env file before reading the environment
    settings = Settings.from_env()
    args = parse_args(argv)

    github_token = os.getenv("GITHUB_TOKEN")
    raw_installation_id = args.installation_id or os.getenv("GITHUB_INSTALLATION_ID")
    try:
        installation_id = int(raw_installation_id) if raw_installation_id else None
    except ValueError:
        logger.error(f"GITHUB_INSTALLATION_ID must be a number, got {raw_installation_id!r}")
        sys.exit(1)

    until = args.until or datetime.now(timezone.utc)
    since = args.since or datetime.now(timezone.utc) - timedelta(days=DEFAULT_WINDOW_DAYS)

    try:
        auth_method = resolve_auth_method(access_token=github_token, installation_id=installation_id)
        client = await AuthResolver(settings).resolve_client(auth_method)
    except GitHubActivityException as e:
        logger.error(f"{e}")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"An unexpected error occurred: {e}")
        sys.exit(1)

    try:
        repo_names = args.repo
        if not repo_names:
            repositories = await list_repositories(client, auth_method, settings)
            repo_names = [repo.full_name for repo in repositories]

        commits = await fetch_commits_across_repositories(
            client, auth_method, repo_names, since, until, author_hint=args.author, settings=settings,
        )
    except GitHubActivityException as e:
        logger.error(f"{e}")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"An unexpected error occurred: {e}")
        sys.exit(1)
    finally:
        await client.close()

    per_repo = Counter(commit.repository.full_name for commit in commits)
    for full_name, count in per_repo.most_common():
        logger.info(f"{full_name}: {count} commits")
    logger.info(f"Total: {len(commits)} commits across {len(per_repo)} repositories.")


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted by user. Exiting gracefully.")


if __name__ == "__main__":
    run()
