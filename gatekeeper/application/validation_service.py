import asyncio
import inspect
import logging
from enum import Enum
from typing import List, Optional, Sequence

from gatekeeper.domain.exceptions import ValidatorExecutionError
from gatekeeper.domain.models import StatusState, ValidationOutcome, ValidatorResult
from gatekeeper.domain.validator import Validator
from gatekeeper.infrastructure.repository_client import RepositoryClient

logger = logging.getLogger(__name__)


class ValidationMode(str, Enum):
    """What to do with a commit once every validator has judged it."""
    STATUS = "status"
    MERGE = "merge"


async def _run_validator(
    validator: Validator,
    sha: str,
    login: Optional[str],
    repo_client: RepositoryClient,
    recheck: bool,
) -> ValidatorResult:
    result = validator.validate(sha, login, repo_client, recheck)
    if inspect.isawaitable(result):
        result = await result
    return result


async def perform_complete_validation(
    sha: str,
    login: Optional[str],
    repo_client: RepositoryClient,
    validators: Sequence[Validator],
    recheck: bool,
    mode: ValidationMode = ValidationMode.STATUS,
    base: Optional[str] = None,
) -> ValidationOutcome:
    """
    Runs every validator against one commit and acts on the combined verdict.

    All validators run, even after one has failed, so the rejection lists every
    reason. The commit is mergeable only if all of them pass. In MERGE mode a
    mergeable commit is merged into `base` (the default branch when omitted); in
    STATUS mode the verdict is posted as a commit status.

    Args:
        sha (str): Commit to judge.
        login (Optional[str]): Author identity; resolved from the commit when None.
        repo_client (RepositoryClient): Gateway used by validators and for the final action.
        validators (Sequence[Validator]): Ordered validators to run.
        recheck (bool): True when a human asked for a fresh validation.
        mode (ValidationMode): Action taken on the verdict.
        base (Optional[str]): Merge target in MERGE mode.

    Returns:
        ValidationOutcome: Per-validator results plus the action taken.

    Raises:
        ValidatorExecutionError: If any validator raised instead of judging. Nothing
            is merged or posted in that case.
    """
    if login is None:
        login = (await repo_client.get_commit(sha)).login

    logger.info(
        f"[{repo_client}] Validating {sha} by {login} with {len(validators)} validators"
        + (" (recheck)" if recheck else "")
    )

    raw_results = await asyncio.gather(
        *(_run_validator(v, sha, login, repo_client, recheck) for v in validators),
        return_exceptions=True,
    )

    results: List[ValidatorResult] = []
    errors = []
    for validator, result in zip(validators, raw_results):
        name = getattr(validator, "name", type(validator).__name__)
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, Exception):
            logger.error(f"[{repo_client}] Validator {name} errored on {sha}: {result!r}")
            errors.append((name, result))
        else:
            logger.debug(f"[{repo_client}] {name} on {sha}: passed={result.passed} {result.reason or ''}")
            results.append(result)

    if errors:
        raise ValidatorExecutionError(sha, errors)

    outcome = ValidationOutcome(sha=sha, login=login, results=results)

    if not outcome.mergeable:
        logger.info(f"[{repo_client}] {sha} rejected: {'; '.join(outcome.reasons)}")
        if mode == ValidationMode.STATUS:
            await repo_client.create_status(sha, StatusState.FAILURE, "; ".join(outcome.reasons))
            return outcome.model_copy(update={"status": StatusState.FAILURE})
        return outcome

    if mode == ValidationMode.MERGE:
        merge = await repo_client.merge(head=sha, base=base or repo_client.config.default_branch)
        return outcome.model_copy(update={"merge": merge})

    await repo_client.create_status(sha, StatusState.SUCCESS, "All validators passed")
    return outcome.model_copy(update={"status": StatusState.SUCCESS})
