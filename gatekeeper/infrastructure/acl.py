from datetime import datetime, timezone
from typing import Any, Dict, Optional

from gatekeeper.domain.models import (
    Build,
    Commit,
    Contributor,
    MergeOutcome,
    MergeResult,
    PullRequest,
    RateLimit,
    RestartResult,
    Status,
    Webhook,
)


def _login(user: Optional[Dict[str, Any]]) -> Optional[str]:
    # GitHub sends null when a commit identity is not linked to an account
    return (user or {}).get("login")


def _timestamp(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    return datetime.fromisoformat(raw.replace("Z", "+00:00"))


class GitHubTranslator:
    """
    Anti-corruption layer that translates raw GitHub REST JSON into domain models.
    """

    @staticmethod
    def to_commit(raw: Dict[str, Any]) -> Commit:
        """
        Transforms a commit object (from the commits or pull-request commits endpoints).

        Args:
            raw (Dict[str, Any]): The raw JSON commit from GitHub.

        Returns:
            Commit: The domain model carrying the linked author and committer logins.
        """
        sha = raw.get("sha")
        if not sha:
            raise ValueError("sha is required to build Commit.")
        git_data = raw.get("commit", {})
        return Commit(
            sha=sha,
            author_login=_login(raw.get("author")),
            committer_login=_login(raw.get("committer")),
            message=git_data.get("message", ""),
        )

    @staticmethod
    def to_pull_request(raw: Dict[str, Any]) -> PullRequest:
        head = raw.get("head", {})
        base = raw.get("base", {})
        return PullRequest(
            number=raw["number"],
            state=raw.get("state", "open"),
            head_ref=head.get("ref", ""),
            head_sha=head.get("sha", ""),
            base_ref=base.get("ref", ""),
            author_login=_login(raw.get("user")),
        )

    @staticmethod
    def to_status(raw: Dict[str, Any]) -> Status:
        return Status(
            state=raw["state"],
            context=raw.get("context") or "default",
            description=raw.get("description"),
            target_url=raw.get("target_url"),
            updated_at=_timestamp(raw.get("updated_at")),
        )

    @staticmethod
    def to_webhook(raw: Dict[str, Any]) -> Webhook:
        config = raw.get("config") or {}
        return Webhook(
            id=raw["id"],
            url=config.get("url"),
            events=frozenset(raw.get("events", [])),
        )

    @staticmethod
    def to_contributor(raw: Dict[str, Any]) -> Contributor:
        return Contributor(login=raw.get("login", ""), contributions=raw.get("contributions", 0))

    @staticmethod
    def to_rate_limit(raw: Dict[str, Any]) -> RateLimit:
        core = raw.get("resources", {}).get("core") or raw.get("rate", {})
        return RateLimit(
            limit=core.get("limit", 0),
            remaining=core.get("remaining", 0),
            reset_at=datetime.fromtimestamp(core.get("reset", 0), tz=timezone.utc),
        )

    @staticmethod
    def to_merge_result(status: int, raw: Optional[Dict[str, Any]]) -> MergeResult:
        raw = raw or {}
        if status == 409:
            return MergeResult(outcome=MergeOutcome.CONFLICT, message=raw.get("message", "Merge conflict"))
        if status == 204:
            return MergeResult(outcome=MergeOutcome.ALREADY_MERGED, message="Nothing to merge")
        return MergeResult(
            outcome=MergeOutcome.MERGED,
            sha=raw.get("sha"),
            message=raw.get("commit", {}).get("message", ""),
        )


class TravisTranslator:
    """Translates Travis CI v3 resources into domain models."""

    @staticmethod
    def to_build(raw: Dict[str, Any]) -> Build:
        return Build(
            id=raw["id"],
            pull_request_number=raw.get("pull_request_number"),
            event_type=raw.get("event_type"),
            state=raw.get("state"),
        )

    @staticmethod
    def to_restart_result(build_id: int, raw: Dict[str, Any]) -> RestartResult:
        build = raw.get("build") or {}
        return RestartResult(
            build_id=build.get("id", build_id),
            accepted=raw.get("@type") == "pending",
            state=build.get("state"),
        )
