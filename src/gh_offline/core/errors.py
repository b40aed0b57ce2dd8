"""Error taxonomy."""

from typing import Optional


class GhOfflineError(Exception):
    """Base error."""


class SyncError(GhOfflineError):
    """Error raised while syncing a repository."""

    phase = "sync"

    def __init__(self, message: str, repository: Optional[str] = None) -> None:
        super().__init__(message)
        self.repository = repository


class AuthFailure(SyncError):
    """Remote rejected the credentials or the repository is not accessible."""

    phase = "fetch"
    hint = "Check that GITHUB_TOKEN is set and has read access to the repository."

    def __init__(
        self,
        message: str = "GitHub authentication failed",
        repository: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, repository)
        self.status_code = status_code


class RateLimited(SyncError):
    """Remote rate limit hit; retryable after `retry_after` seconds."""

    phase = "fetch"

    def __init__(
        self,
        retry_after: Optional[float] = None,
        repository: Optional[str] = None,
    ) -> None:
        super().__init__("GitHub API rate limit exceeded", repository)
        self.retry_after = retry_after


class TransientNetwork(SyncError):
    """Network or server error; retryable with backoff."""

    phase = "fetch"


class RetriesExhausted(SyncError):
    """A retryable error kept failing until the attempt budget ran out."""

    phase = "fetch"

    def __init__(self, attempts: int, last_error: Exception, repository: Optional[str] = None) -> None:
        super().__init__(f"Giving up after {attempts} attempts: {last_error}", repository)
        self.attempts = attempts
        self.last_error = last_error


class RemoteRequestError(SyncError):
    """Remote rejected the request for a reason retrying will not fix."""

    phase = "fetch"

    def __init__(self, message: str, repository: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message, repository)
        self.status_code = status_code


class MalformedResponse(SyncError):
    """Page or record could not be understood; skipped and counted."""

    phase = "normalize"

    def __init__(
        self,
        message: str,
        repository: Optional[str] = None,
        next_cursor: Optional[str] = None,
    ) -> None:
        super().__init__(message, repository)
        self.next_cursor = next_cursor


class RemoteItemConflict(SyncError):
    """Remote item is already mirrored under another tracked repository."""

    phase = "merge"
    hint = "The repository was probably renamed or transferred; untrack the old name with: gh-offline repo rm owner/name"

    def __init__(self, message: str, repository: Optional[str] = None, other_repository: Optional[str] = None) -> None:
        super().__init__(message, repository)
        self.other_repository = other_repository


class IntegrityViolation(GhOfflineError):
    """Store rejected a write the merge logic should have prevented."""

    phase = "merge"


class NotFound(GhOfflineError):
    """Query found nothing."""


class ItemNotFound(NotFound):
    """No stored item matches the requested number."""

    def __init__(self, number: int, repository: Optional[str] = None) -> None:
        where = f" in {repository}" if repository else ""
        super().__init__(f"#{number} not found{where}")
        self.number = number
        self.repository = repository


class NotTracked(NotFound):
    """Repository is not tracked."""

    def __init__(self, repository: str) -> None:
        super().__init__(f"Repository '{repository}' is not tracked")
        self.repository = repository


class AlreadyTracked(GhOfflineError):
    """Repository is already tracked."""

    def __init__(self, repository: str) -> None:
        super().__init__(f"Repository '{repository}' is already tracked")
        self.repository = repository
