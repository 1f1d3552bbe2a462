import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from gatekeeper.application.validation_service import ValidationMode, perform_complete_validation
from gatekeeper.domain.exceptions import BuildNotFoundError
from gatekeeper.domain.models import MergeOutcome, StatusState, ValidationOutcome
from gatekeeper.infrastructure.repository_client import RepositoryClient

logger = logging.getLogger(__name__)

PULL_REQUEST_ACTIONS = {"opened", "reopened", "synchronize"}


class EventState(str, Enum):
    IGNORED = "ignored"
    VALIDATED = "validated"
    MERGED = "merged"
    REJECTED = "rejected"
    REBUILT = "rebuilt"


class EventResult(BaseModel):
    """Terminal state reached by one inbound event. Errors are raised instead."""
    model_config = ConfigDict(frozen=True)

    event: str
    state: EventState
    pr_number: Optional[int] = None
    outcome: Optional[ValidationOutcome] = None
    reasons: List[str] = Field(default_factory=list)
    rebuilt: List[int] = Field(default_factory=list)


class EventDispatcher:
    """
    Routes GitHub webhook payloads to the handler for their event type.

    Each event is handled on its own; nothing is kept between events.
    """

    def __init__(self, repo_client: RepositoryClient):
        self.repo_client = repo_client
        self.handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[EventResult]]] = {
            "issue_comment": self.handle_issue_comment,
            "pull_request": self.handle_pull_request,
            "status": self.handle_status,
            "push": self.handle_push,
        }

    @property
    def validators(self):
        return self.repo_client.validators

    async def dispatch(self, event_type: str, payload: Dict[str, Any]) -> EventResult:
        handler = self.handlers.get(event_type)
        if handler is None:
            logger.debug(f"[{self.repo_client}] Ignoring '{event_type}' event")
            return EventResult(event=event_type, state=EventState.IGNORED)

        try:
            return await handler(payload)
        except Exception as e:
            logger.error(f"[{self.repo_client}] '{event_type}' event failed: {e!r}")
            raise

    async def handle_issue_comment(self, payload: Dict[str, Any]) -> EventResult:
        """
        A comment on a pull request forces a fresh validation of its latest commit.
        Comments on plain issues are ignored without any remote call.
        """
        issue = payload.get("issue") or {}
        if not issue.get("pull_request"):
            return EventResult(event="issue_comment", state=EventState.IGNORED)

        pr_number = issue["number"]
        commit = await self.repo_client.get_last_commit_on_pull_request(pr_number)
        logger.info(f"[{self.repo_client}] Comment on PR#{pr_number}, revalidating {commit.sha}")
        outcome = await perform_complete_validation(
            commit.sha,
            commit.login,
            self.repo_client,
            self.validators,
            recheck=True,
        )
        return self._result("issue_comment", pr_number, outcome)

    async def handle_pull_request(self, payload: Dict[str, Any]) -> EventResult:
        action = payload.get("action")
        pull_request = payload.get("pull_request") or {}
        pr_number = pull_request.get("number", payload.get("number"))
        if action not in PULL_REQUEST_ACTIONS:
            return EventResult(event="pull_request", state=EventState.IGNORED, pr_number=pr_number)

        sha = pull_request["head"]["sha"]
        logger.info(f"[{self.repo_client}] PR#{pr_number} {action}, validating {sha}")
        outcome = await perform_complete_validation(
            sha,
            None,
            self.repo_client,
            self.validators,
            recheck=False,
        )
        return self._result("pull_request", pr_number, outcome)

    async def handle_status(self, payload: Dict[str, Any]) -> EventResult:
        """
        A finished status from another context may change the verdict for the
        open pull request whose head it describes; merge it when auto-merge is on.
        """
        config = self.repo_client.config
        sha = payload.get("sha")
        context = payload.get("context")
        state = payload.get("state")
        if context == config.status_context or state == StatusState.PENDING.value or not sha:
            return EventResult(event="status", state=EventState.IGNORED)

        pull_requests = await self.repo_client.get_all_open_pull_requests()
        pull_request = next((pr for pr in pull_requests if pr.head_sha == sha), None)
        if pull_request is None:
            logger.debug(f"[{self.repo_client}] No open pull request has head {sha}")
            return EventResult(event="status", state=EventState.IGNORED)

        mode = ValidationMode.MERGE if config.auto_merge else ValidationMode.STATUS
        outcome = await perform_complete_validation(
            sha,
            None,
            self.repo_client,
            self.validators,
            recheck=False,
            mode=mode,
            base=pull_request.base_ref,
        )
        return self._result("status", pull_request.number, outcome)

    async def handle_push(self, payload: Dict[str, Any]) -> EventResult:
        """
        A push to the default branch rebuilds every open pull request, since each
        of them is now tested against an outdated base.
        """
        if payload.get("ref") != f"refs/heads/{self.repo_client.config.default_branch}":
            return EventResult(event="push", state=EventState.IGNORED)

        pull_requests = await self.repo_client.get_all_open_pull_requests()
        results = await asyncio.gather(
            *(self.repo_client.trigger_travis_for_pull_request(pr.number) for pr in pull_requests),
            return_exceptions=True,
        )

        rebuilt = []
        errors = []
        for pr, result in zip(pull_requests, results):
            if isinstance(result, BuildNotFoundError):
                logger.warning(f"[{self.repo_client}] {result}; skipping")
            elif isinstance(result, BaseException):
                logger.error(f"[{self.repo_client}] Rebuild of PR#{pr.number} failed: {result!r}")
                errors.append(result)
            else:
                rebuilt.append(pr.number)

        if errors:
            raise errors[0]
        return EventResult(event="push", state=EventState.REBUILT, rebuilt=rebuilt)

    @staticmethod
    def _result(event: str, pr_number: Optional[int], outcome: ValidationOutcome) -> EventResult:
        if not outcome.mergeable:
            return EventResult(
                event=event, state=EventState.REJECTED, pr_number=pr_number,
                outcome=outcome, reasons=outcome.reasons,
            )
        if outcome.merge is not None:
            if outcome.merge.outcome == MergeOutcome.CONFLICT:
                return EventResult(
                    event=event, state=EventState.REJECTED, pr_number=pr_number,
                    outcome=outcome, reasons=[outcome.merge.message],
                )
            return EventResult(event=event, state=EventState.MERGED, pr_number=pr_number, outcome=outcome)
        return EventResult(event=event, state=EventState.VALIDATED, pr_number=pr_number, outcome=outcome)
