import unittest
from datetime import datetime, timezone

from github_activity.application.commit_service import (
    fetch_commits,
    fetch_commits_across_repositories,
    to_iso8601,
)
from github_activity.config import Settings
from github_activity.domain.exceptions import NoAuthenticationError
from github_activity.domain.models import GitHubApp, OAuth
from github_fakes import FakeGitHubClient, make_commit

LOGGER = "github_activity.application.commit_service"
SINCE = "2024-01-01T00:00:00Z"
UNTIL = "2024-01-31T23:59:59Z"
OAUTH = OAuth(token="gho_user")


class TestFetchCommits(unittest.IsolatedAsyncioTestCase):
    async def test_commits_are_stamped_with_repository(self) -> None:
        client = FakeGitHubClient(commits={"octocat/hello": [make_commit("a1"), make_commit("b2")]})

        commits = await fetch_commits(client, "octocat", "hello", SINCE, UNTIL)

        self.assertEqual([c.sha for c in commits], ["a1", "b2"])
        self.assertTrue(all(c.repository.full_name == "octocat/hello" for c in commits))

    async def test_error_yields_empty_list(self) -> None:
        client = FakeGitHubClient(failing_repos=["octocat/gone"])

        with self.assertLogs(LOGGER, level="ERROR") as logs:
            commits = await fetch_commits(client, "octocat", "gone", SINCE, UNTIL)

        self.assertEqual(commits, [])
        self.assertTrue(any("octocat/gone" in line for line in logs.output))

    async def test_author_filter_is_passed_through(self) -> None:
        client = FakeGitHubClient(commits={"o/r": [make_commit("a1", login="jane"), make_commit("b2", login="joe")]})

        commits = await fetch_commits(client, "o", "r", SINCE, UNTIL, author="jane")

        self.assertEqual([c.sha for c in commits], ["a1"])
        self.assertEqual(client.commit_calls(), [("list_commits", "o/r", "jane")])


class TestToIso8601(unittest.TestCase):
    def test_aware_datetime(self) -> None:
        self.assertEqual(to_iso8601(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)), "2024-01-02T03:04:05Z")

    def test_naive_datetime_is_treated_as_utc(self) -> None:
        self.assertEqual(to_iso8601(datetime(2024, 1, 2)), "2024-01-02T00:00:00Z")

    def test_string_passes_through(self) -> None:
        self.assertEqual(to_iso8601(SINCE), SINCE)


class TestFetchAcrossRepositories(unittest.IsolatedAsyncioTestCase):
    async def test_requires_authentication_before_any_request(self) -> None:
        client = FakeGitHubClient(commits={"o/r": [make_commit("a1")]})

        with self.assertRaises(NoAuthenticationError):
            await fetch_commits_across_repositories(client, None, ["o/r"], SINCE, UNTIL)

        self.assertEqual(client.calls, [])

    async def test_order_follows_repository_list_not_completion(self) -> None:
        client = FakeGitHubClient(
            commits={
                "o/slow": [make_commit("s1"), make_commit("s2")],
                "o/fast": [make_commit("f1")],
            },
            delays={"o/slow": 0.05},
        )

        commits = await fetch_commits_across_repositories(client, OAUTH, ["o/slow", "o/fast"], SINCE, UNTIL)

        self.assertEqual([c.sha for c in commits], ["s1", "s2", "f1"])
        self.assertEqual(
            [c.repository.full_name for c in commits],
            ["o/slow", "o/slow", "o/fast"],
        )

    async def test_malformed_names_are_skipped(self) -> None:
        client = FakeGitHubClient(commits={"o/r": [make_commit("a1")]})

        with self.assertLogs(LOGGER, level="WARNING"):
            commits = await fetch_commits_across_repositories(client, OAUTH, ["bad", "o/r", "a/b/c"], SINCE, UNTIL)

        self.assertEqual([c.sha for c in commits], ["a1"])
        self.assertEqual([call[1] for call in client.commit_calls()], ["o/r"])

    async def test_failing_repository_does_not_abort_batch(self) -> None:
        client = FakeGitHubClient(
            commits={"o/one": [make_commit("a1")], "o/three": [make_commit("c3")]},
            failing_repos=["o/two"],
        )

        commits = await fetch_commits_across_repositories(
            client, OAUTH, ["o/one", "o/two", "o/three"], SINCE, UNTIL,
        )

        self.assertEqual([c.sha for c in commits], ["a1", "c3"])

    async def test_batch_size_bounds_in_flight_requests(self) -> None:
        names = [f"o/r{i}" for i in range(7)]
        client = FakeGitHubClient(delays={name: 0.01 for name in names})
        settings = Settings(oauth_commit_batch_size=3, app_commit_batch_size=5)

        await fetch_commits_across_repositories(client, OAUTH, names, SINCE, UNTIL, settings=settings)
        self.assertEqual(client.max_in_flight, 3)

        app_client = FakeGitHubClient(delays={name: 0.01 for name in names})
        await fetch_commits_across_repositories(
            app_client, GitHubApp(installation_id=1), names, SINCE, UNTIL, settings=settings,
        )
        self.assertEqual(app_client.max_in_flight, 5)


class TestAuthorFallback(unittest.IsolatedAsyncioTestCase):
    async def test_direct_match_runs_single_tier(self) -> None:
        client = FakeGitHubClient(commits={"octocat/one": [make_commit("a1", login="octocat")]})

        commits = await fetch_commits_across_repositories(
            client, OAUTH, ["octocat/one"], SINCE, UNTIL, author_hint="octocat",
        )

        self.assertEqual([c.sha for c in commits], ["a1"])
        self.assertEqual(client.commit_calls(), [("list_commits", "octocat/one", "octocat")])

    async def test_falls_back_to_repository_owner(self) -> None:
        client = FakeGitHubClient(commits={
            "octocat/one": [make_commit("a1", login="octocat"), make_commit("b2", login="someone")],
            "acme/tools": [make_commit("c3", login="acme")],
        })

        with self.assertLogs(LOGGER, level="INFO") as logs:
            commits = await fetch_commits_across_repositories(
                client, OAUTH, ["octocat/one", "acme/tools"], SINCE, UNTIL, author_hint="Octo Cat",
            )

        self.assertEqual([c.sha for c in commits], ["a1", "c3"])
        tier_two = [line for line in logs.output if "repo owner as author" in line]
        self.assertEqual(len(tier_two), 1)
        self.assertFalse(any("without author filter" in line for line in logs.output))
        self.assertEqual(
            [call[2] for call in client.commit_calls()],
            ["Octo Cat", "Octo Cat", "octocat", "acme"],
        )

    async def test_falls_back_to_no_author_filter(self) -> None:
        client = FakeGitHubClient(commits={"octocat/one": [make_commit("a1", login="someone")]})

        with self.assertLogs(LOGGER, level="INFO") as logs:
            commits = await fetch_commits_across_repositories(
                client, OAUTH, ["octocat/one"], SINCE, UNTIL, author_hint="Octo Cat",
            )

        self.assertEqual([c.sha for c in commits], ["a1"])
        self.assertTrue(any("without author filter" in line for line in logs.output))
        self.assertEqual([call[2] for call in client.commit_calls()], ["Octo Cat", "octocat", None])

    async def test_no_fallback_without_hint(self) -> None:
        client = FakeGitHubClient()

        commits = await fetch_commits_across_repositories(client, OAUTH, ["o/r"], SINCE, UNTIL)

        self.assertEqual(commits, [])
        self.assertEqual(len(client.commit_calls()), 1)

    async def test_fallback_can_be_disabled(self) -> None:
        client = FakeGitHubClient(commits={"o/r": [make_commit("a1", login="someone")]})

        commits = await fetch_commits_across_repositories(
            client, OAUTH, ["o/r"], SINCE, UNTIL, author_hint="x",
            settings=Settings(author_fallback_enabled=False),
        )

        self.assertEqual(commits, [])
        self.assertEqual(len(client.commit_calls()), 1)
