from typing import TYPE_CHECKING, Awaitable, Optional, Protocol, Union, runtime_checkable

from gatekeeper.domain.models import ValidatorResult

if TYPE_CHECKING:
    from gatekeeper.infrastructure.repository_client import RepositoryClient


@runtime_checkable
class Validator(Protocol):
    """
    A pluggable judge of a commit/author pair.

    `recheck` is True when a human asked for the commit to be validated again;
    implementations that remember earlier negative answers must not reuse them then.
    A validator that cannot reach a verdict raises; a failing verdict is returned.
    """

    name: str

    def validate(
        self,
        sha: str,
        login: Optional[str],
        repo_client: "RepositoryClient",
        recheck: bool,
    ) -> Union[ValidatorResult, Awaitable[ValidatorResult]]:
        ...
