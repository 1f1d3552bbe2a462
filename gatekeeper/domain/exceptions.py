from typing import List, Optional, Tuple


class GatekeeperException(Exception):
    """Base exception for all gatekeeper-related errors."""
    pass

class NotFoundError(GatekeeperException):
    """Raised when a requested domain object does not exist."""
    pass

class TransportError(GatekeeperException):
    """Raised when a call to the hosting or CI provider fails."""
    def __init__(self, status: int, message: str, url: Optional[str] = None):
        self.status = status
        self.url = url
        super().__init__(f"[{status}] {message}" + (f" ({url})" if url else ""))

class ResourceNotFoundError(TransportError, NotFoundError):
    """Raised when the provider answers 404 (unknown SHA, PR, hook...)."""
    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(404, message, url)

class RateLimitExceededException(TransportError):
    """Raised when the GitHub API rate limit is hit."""
    def __init__(self, reset_at: str, message: str = "GitHub API rate limit exceeded."):
        self.reset_at = reset_at
        super().__init__(403, f"{message} Resets at: {reset_at}")

class BuildNotFoundError(NotFoundError):
    """Raised when no recent CI build belongs to the given pull request."""
    def __init__(self, pr_number: int, slug: str):
        self.pr_number = pr_number
        self.slug = slug
        super().__init__(f"No pull request with #{pr_number} among recent builds of {slug}")

class WebhookReconciliationError(GatekeeperException):
    """Raised when a stale webhook could not be removed; nothing was created."""
    def __init__(self, url: str, failures: List[BaseException]):
        self.url = url
        self.failures = failures
        super().__init__(
            f"Could not remove {len(failures)} stale webhook(s) for {url}: "
            + "; ".join(str(f) for f in failures)
        )

class ValidatorExecutionError(GatekeeperException):
    """Raised when a validator errors instead of passing or failing."""
    def __init__(self, sha: str, failures: List[Tuple[str, BaseException]]):
        self.sha = sha
        self.failures = failures
        details = "; ".join(f"{name}: {error!r}" for name, error in failures)
        super().__init__(f"Validation of {sha} is indeterminate: {details}")
