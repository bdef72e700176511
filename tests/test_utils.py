import asyncio
import unittest

from github_activity.application import utils
from github_activity.application.utils import (
    check_rate_limit,
    deduplicate_by,
    format_api_error,
    parse_scopes,
    process_batches,
    split_repo_full_name,
    validate_scopes,
)
from github_activity.config import Settings
from github_activity.domain.exceptions import GitHubApiError, RateLimitExceededException
from github_fakes import FakeGitHubClient


class TestScopes(unittest.TestCase):
    def test_parse_scopes_trims_and_splits(self) -> None:
        self.assertEqual(parse_scopes("repo, read:org"), ["repo", "read:org"])
        self.assertEqual(parse_scopes("repo,read:org ,  user"), ["repo", "read:org", "user"])

    def test_parse_scopes_missing_header(self) -> None:
        self.assertEqual(parse_scopes(None), [])
        self.assertEqual(parse_scopes(""), [])

    def test_validate_scopes_all_present(self) -> None:
        check = validate_scopes(["repo", "read:org"], ["repo"])
        self.assertTrue(check.is_valid)
        self.assertEqual(check.missing, [])

    def test_validate_scopes_reports_missing(self) -> None:
        check = validate_scopes(["read:org"], ["repo", "read:org"])
        self.assertFalse(check.is_valid)
        self.assertEqual(check.missing, ["repo"])
        self.assertEqual(check.requested, ["repo", "read:org"])

    def test_validate_scopes_defaults_to_repo(self) -> None:
        self.assertFalse(validate_scopes([]).is_valid)
        self.assertTrue(validate_scopes(["repo"]).is_valid)


class TestSplitRepoFullName(unittest.TestCase):
    def test_valid_name(self) -> None:
        self.assertEqual(split_repo_full_name("octocat/hello-world"), ("octocat", "hello-world"))

    def test_malformed_names(self) -> None:
        for name in ["bad", "a/b/c", "", None, "/repo", "owner/"]:
            with self.subTest(name=name):
                self.assertEqual(split_repo_full_name(name), ("", ""))


class TestDeduplicateBy(unittest.TestCase):
    def test_first_occurrence_wins(self) -> None:
        items = [("a", 1), ("b", 2), ("a", 3), ("c", 4), ("b", 5)]

        with self.assertLogs("github_activity.application.utils", level="INFO") as logs:
            result = deduplicate_by(items, lambda item: item[0])

        self.assertEqual(result, [("a", 1), ("b", 2), ("c", 4)])
        self.assertTrue(any("Removed 2 duplicate" in line for line in logs.output))

    def test_no_log_without_duplicates(self) -> None:
        with self.assertNoLogs("github_activity.application.utils", level="INFO"):
            result = deduplicate_by([1, 2, 3], lambda item: item)
        self.assertEqual(result, [1, 2, 3])


class TestProcessBatches(unittest.IsolatedAsyncioTestCase):
    async def test_results_follow_input_order(self) -> None:
        async def slow_for_small(value: int) -> int:
            # earlier items finish last
            await asyncio.sleep(0.01 * (5 - value))
            return value * 10

        result = await process_batches([1, 2, 3, 4, 5], 2, slow_for_small)

        self.assertEqual(result, [10, 20, 30, 40, 50])

    async def test_batch_bounds_concurrency(self) -> None:
        state = {"in_flight": 0, "max": 0}

        async def track(value: int) -> int:
            state["in_flight"] += 1
            state["max"] = max(state["max"], state["in_flight"])
            await asyncio.sleep(0.001)
            state["in_flight"] -= 1
            return value

        await process_batches(list(range(10)), 3, track)

        self.assertEqual(state["max"], 3)

    async def test_empty_input_short_circuits(self) -> None:
        calls = []

        async def record(value):
            calls.append(value)
            return value

        self.assertEqual(await process_batches([], 5, record), [])
        self.assertEqual(calls, [])

    async def test_rejects_non_positive_batch_size(self) -> None:
        async def identity(value):
            return value

        with self.assertRaises(ValueError):
            await process_batches([1], 0, identity)


class TestCheckRateLimit(unittest.IsolatedAsyncioTestCase):
    async def test_returns_status(self) -> None:
        client = FakeGitHubClient(
            rate_limit={"resources": {"core": {"limit": 5000, "remaining": 4000, "reset": 1700000000}}}
        )

        status = await check_rate_limit(client)

        self.assertEqual(status.limit, 5000)
        self.assertEqual(status.remaining, 4000)
        self.assertEqual(status.reset_epoch_seconds, 1700000000)
        self.assertAlmostEqual(status.used_percent, 20.0)

    async def test_warns_on_low_headroom(self) -> None:
        client = FakeGitHubClient(
            rate_limit={"resources": {"core": {"limit": 5000, "remaining": 50, "reset": 1700000000}}}
        )

        with self.assertLogs("github_activity.application.utils", level="WARNING") as logs:
            status = await check_rate_limit(client, Settings(), label="OAuth")

        self.assertIsNotNone(status)
        self.assertTrue(any("running low (OAuth)" in line for line in logs.output))

    async def test_returns_none_when_call_fails(self) -> None:
        client = FakeGitHubClient(errors={"get_rate_limit": GitHubApiError(500, "boom")})

        with self.assertLogs("github_activity.application.utils", level="WARNING"):
            status = await check_rate_limit(client)

        self.assertIsNone(status)

    async def test_returns_none_on_malformed_payload(self) -> None:
        client = FakeGitHubClient(rate_limit={"resources": {}})

        with self.assertLogs("github_activity.application.utils", level="WARNING"):
            self.assertIsNone(await check_rate_limit(client))


class TestFormatApiError(unittest.TestCase):
    def test_unauthorized(self) -> None:
        message = format_api_error(GitHubApiError(401, "Bad credentials"))
        self.assertIn("authentication failed", message)

    def test_response_message(self) -> None:
        error = GitHubApiError(422, "Validation Failed", data={"message": "Validation Failed"})
        self.assertEqual(format_api_error(error), "GitHub API error: Validation Failed")

    def test_response_message_from_body(self) -> None:
        error = GitHubApiError(409, "", data={"message": "Git Repository is empty."})
        self.assertEqual(format_api_error(error), "GitHub API error: Git Repository is empty.")

    def test_status_without_message(self) -> None:
        error = GitHubApiError(502, "", reason="Bad Gateway")
        self.assertEqual(format_api_error(error), "GitHub API error: 502 Bad Gateway")

    def test_forbidden_and_not_found(self) -> None:
        self.assertIn("Access denied", format_api_error(RateLimitExceededException(reset_at=None)))
        self.assertIn("not found", format_api_error(GitHubApiError(404, "Not Found")))

    def test_plain_exception(self) -> None:
        self.assertEqual(format_api_error(RuntimeError("socket closed")), "GitHub error: socket closed")

    def test_non_exception_values(self) -> None:
        self.assertEqual(format_api_error("weird"), "GitHub error: weird")
        self.assertEqual(format_api_error(42), "GitHub error: 42")

    def test_missing_error(self) -> None:
        self.assertEqual(format_api_error(None), "Unknown GitHub API error")


class TestRepoIdentifier(unittest.TestCase):
    def test_joins_owner_and_repo(self) -> None:
        self.assertEqual(utils.repo_identifier("octocat", "hello-world"), "octocat/hello-world")
