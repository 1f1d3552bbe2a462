import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence

from gatekeeper.domain.models import StatusState, ValidatorResult
from gatekeeper.domain.validator import Validator
from gatekeeper.infrastructure.repository_client import RepositoryClient

logger = logging.getLogger(__name__)

# Rejected logins remembered by ContributorValidator; the oldest is forgotten first
MAX_REMEMBERED_REJECTIONS = 1024


class ContributorValidator:
    """
    Passes when the author has contributed to the repository before or is on the
    contributor roster. Up to `max_remembered` failed logins are remembered until a recheck.
    """

    name = "contributor"

    def __init__(self, max_remembered: int = MAX_REMEMBERED_REJECTIONS) -> None:
        self.max_remembered = max_remembered
        self._rejected: "OrderedDict[str, None]" = OrderedDict()

    async def validate(
        self, sha: str, login: Optional[str], repo_client: RepositoryClient, recheck: bool
    ) -> ValidatorResult:
        if not login:
            return ValidatorResult(
                validator=self.name,
                passed=False,
                reason=f"Commit {sha[:7]} is not linked to a GitHub account",
            )

        if recheck:
            self._rejected.pop(login, None)
        elif login in self._rejected:
            return self._reject(login)

        roster = await repo_client.get_contributor_roster()
        if login in roster:
            return ValidatorResult(validator=self.name, passed=True)

        contributors = await repo_client.get_contributors()
        if any(c.login == login for c in contributors):
            return ValidatorResult(validator=self.name, passed=True)

        self._rejected[login] = None
        if len(self._rejected) > self.max_remembered:
            self._rejected.popitem(last=False)
        logger.info(f"[{repo_client}] {login} is not a known contributor")
        return self._reject(login)

    def _reject(self, login: str) -> ValidatorResult:
        return ValidatorResult(validator=self.name, passed=False, reason=f"{login} is not a known contributor")


class FastForwardValidator:
    """Fails commits that are behind the default branch."""

    name = "fast_forward"

    async def validate(
        self, sha: str, login: Optional[str], repo_client: RepositoryClient, recheck: bool
    ) -> ValidatorResult:
        behind, distance = await repo_client.is_behind_master(sha)
        if behind:
            branch = repo_client.config.default_branch
            return ValidatorResult(
                validator=self.name,
                passed=False,
                reason=f"{sha[:7]} is {distance} commit(s) behind {branch}; rebase or merge {branch}",
            )
        return ValidatorResult(validator=self.name, passed=True)


class CIStatusValidator:
    """
    Passes when the latest status of every external context is success.
    Our own context is ignored, and a commit without any status fails.
    """

    name = "ci_status"

    async def validate(
        self, sha: str, login: Optional[str], repo_client: RepositoryClient, recheck: bool
    ) -> ValidatorResult:
        statuses = await repo_client.get_all_statuses_for(sha)
        own_context = repo_client.config.status_context

        # GitHub lists statuses newest first
        latest = {}
        for status in statuses:
            if status.context != own_context and status.context not in latest:
                latest[status.context] = status

        if not latest:
            return ValidatorResult(validator=self.name, passed=False, reason="No CI status yet")

        unfinished = sorted(
            f"{context} is {status.state.value}"
            for context, status in latest.items()
            if status.state != StatusState.SUCCESS
        )
        if unfinished:
            return ValidatorResult(validator=self.name, passed=False, reason=", ".join(unfinished))
        return ValidatorResult(validator=self.name, passed=True)


VALIDATORS: Dict[str, type] = {
    ContributorValidator.name: ContributorValidator,
    FastForwardValidator.name: FastForwardValidator,
    CIStatusValidator.name: CIStatusValidator,
}


def build_validators(names: Sequence[str]) -> List[Validator]:
    """
    Instantiates validators by name, keeping the given order.

    Raises:
        ValueError: If a name is not a known validator.
    """
    validators = []
    for name in names:
        name = name.strip()
        if not name:
            continue
        if name not in VALIDATORS:
            raise ValueError(f"Unknown validator '{name}'. Known: {', '.join(sorted(VALIDATORS))}")
        validators.append(VALIDATORS[name]())
    return validators
