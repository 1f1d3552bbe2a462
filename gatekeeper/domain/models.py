from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class RepositoryConfig(BaseModel):
    """
    Immutable configuration of the single repository the gatekeeper guards.
    Built once at startup and owned by the RepositoryClient.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    github_username: str = Field(..., description="Login the gatekeeper acts as")
    github_token: SecretStr = Field(..., description="GitHub API token")
    travis_token: Optional[SecretStr] = Field(default=None, description="Travis CI API token")
    organization: str = Field(..., description="Owner of the repository")
    repository: str = Field(..., description="Name of the repository")
    validators: Tuple[Any, ...] = Field(default=(), description="Ordered validators run on every commit")
    hooks: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Webhook target URL -> subscribed event names",
    )
    contributors_url: Optional[str] = Field(default=None, description="Roster of approved contributors")
    default_branch: str = Field(default="master")
    status_context: str = Field(default="gatekeeper", description="Context of the statuses we post")
    auto_merge: bool = Field(default=False, description="Merge validated commits when CI turns green")

    @field_validator("validators", mode="before")
    @classmethod
    def freeze_validators(cls, v):
        return tuple(v)


class Commit(BaseModel):
    model_config = ConfigDict(frozen=True)

    sha: str
    author_login: Optional[str] = None
    committer_login: Optional[str] = None
    message: str = ""

    @property
    def login(self) -> Optional[str]:
        """Identity validators judge: the committer, or the author when GitHub could not link one."""
        return self.committer_login or self.author_login


class PullRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: int
    state: str
    head_ref: str
    head_sha: str
    base_ref: str
    author_login: Optional[str] = None


class StatusState(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


class Status(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: StatusState
    context: str = "default"
    description: Optional[str] = None
    target_url: Optional[str] = None
    updated_at: Optional[datetime] = None


class Webhook(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    url: Optional[str] = None
    events: FrozenSet[str] = frozenset()


class Build(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    pull_request_number: Optional[int] = None
    event_type: Optional[str] = None
    state: Optional[str] = None


class RestartResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    build_id: int
    accepted: bool
    state: Optional[str] = None


class MergeOutcome(str, Enum):
    MERGED = "merged"
    ALREADY_MERGED = "already_merged"
    CONFLICT = "conflict"


class MergeResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome: MergeOutcome
    sha: Optional[str] = Field(default=None, description="Merge commit, when one was created")
    message: str = ""


class Contributor(BaseModel):
    model_config = ConfigDict(frozen=True)

    login: str
    contributions: int = Field(default=0, ge=0)


class RateLimit(BaseModel):
    model_config = ConfigDict(frozen=True)

    limit: int
    remaining: int
    reset_at: datetime


class Page(BaseModel):
    """One page of a provider listing. next_url is None on the last page."""
    model_config = ConfigDict(frozen=True)

    items: List[Dict[str, Any]]
    next_url: Optional[str] = None


class ValidatorResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    validator: str
    passed: bool
    reason: Optional[str] = None


class ValidationOutcome(BaseModel):
    """Aggregated verdict of every configured validator for one commit."""
    model_config = ConfigDict(frozen=True)

    sha: str
    login: Optional[str]
    results: List[ValidatorResult]
    merge: Optional[MergeResult] = None
    status: Optional[StatusState] = None

    @property
    def mergeable(self) -> bool:
        return all(result.passed for result in self.results)

    @property
    def reasons(self) -> List[str]:
        return [
            result.reason or f"{result.validator} failed"
            for result in self.results if not result.passed
        ]
