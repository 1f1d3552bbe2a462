import unittest
from datetime import datetime, timezone

from gatekeeper.domain.models import MergeOutcome, StatusState
from gatekeeper.infrastructure.acl import GitHubTranslator, TravisTranslator


class TestGitHubTranslator(unittest.TestCase):
    def test_to_commit_reads_linked_logins(self) -> None:
        raw = {
            "sha": "abc123",
            "commit": {"message": "Fix widget", "committer": {"name": "Web Flow"}},
            "author": {"login": "alice"},
            "committer": {"login": "web-flow"},
        }

        commit = GitHubTranslator.to_commit(raw)

        self.assertEqual(commit.author_login, "alice")
        self.assertEqual(commit.committer_login, "web-flow")
        self.assertEqual(commit.login, "web-flow")
        self.assertEqual(commit.message, "Fix widget")

    def test_unlinked_committer_falls_back_to_author(self) -> None:
        commit = GitHubTranslator.to_commit({"sha": "abc", "author": {"login": "alice"}, "committer": None})

        self.assertIsNone(commit.committer_login)
        self.assertEqual(commit.login, "alice")

    def test_missing_sha_raises(self) -> None:
        with self.assertRaises(ValueError):
            GitHubTranslator.to_commit({"commit": {}})

    def test_to_webhook_uses_event_set(self) -> None:
        hook = GitHubTranslator.to_webhook(
            {"id": 7, "config": {"url": "https://x/hook"}, "events": ["push", "status", "push"]}
        )

        self.assertEqual(hook.url, "https://x/hook")
        self.assertEqual(hook.events, frozenset({"status", "push"}))

    def test_to_status_parses_timestamp(self) -> None:
        status = GitHubTranslator.to_status({
            "state": "failure",
            "context": "ci/travis",
            "updated_at": "2024-01-02T03:04:05Z",
        })

        self.assertEqual(status.state, StatusState.FAILURE)
        self.assertEqual(status.updated_at, datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))

    def test_to_pull_request(self) -> None:
        pr = GitHubTranslator.to_pull_request({
            "number": 12,
            "state": "open",
            "head": {"ref": "feature", "sha": "abc"},
            "base": {"ref": "master"},
            "user": {"login": "bob"},
        })

        self.assertEqual((pr.number, pr.head_sha, pr.base_ref, pr.author_login), (12, "abc", "master", "bob"))

    def test_merge_results(self) -> None:
        merged = GitHubTranslator.to_merge_result(201, {"sha": "m1", "commit": {"message": "Merge abc"}})

        self.assertEqual(merged.outcome, MergeOutcome.MERGED)
        self.assertEqual(merged.sha, "m1")
        self.assertEqual(GitHubTranslator.to_merge_result(204, None).outcome, MergeOutcome.ALREADY_MERGED)
        self.assertEqual(
            GitHubTranslator.to_merge_result(409, {"message": "Merge Conflict"}).outcome, MergeOutcome.CONFLICT
        )

    def test_to_rate_limit(self) -> None:
        limit = GitHubTranslator.to_rate_limit(
            {"resources": {"core": {"limit": 5000, "remaining": 4321, "reset": 1704164645}}}
        )

        self.assertEqual(limit.remaining, 4321)
        self.assertEqual(limit.reset_at, datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))


class TestTravisTranslator(unittest.TestCase):
    def test_restart_result(self) -> None:
        result = TravisTranslator.to_restart_result(
            5, {"@type": "pending", "build": {"id": 5, "state": "created"}, "action": "restart"}
        )

        self.assertTrue(result.accepted)
        self.assertEqual(result.state, "created")

    def test_rejected_restart(self) -> None:
        result = TravisTranslator.to_restart_result(5, {"@type": "error", "error_message": "forbidden"})

        self.assertFalse(result.accepted)
        self.assertEqual(result.build_id, 5)
