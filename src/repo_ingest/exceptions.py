from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum, auto
from typing import ClassVar


class ErrorCategory(StrEnum):
    """Actionable categories a caller can render for a failed ingestion."""

    RATE_LIMITED = auto()
    AUTHENTICATION_REQUIRED = auto()
    ACCESS_DENIED = auto()
    REPOSITORY_NOT_FOUND = auto()
    REFERENCE_NOT_FOUND = auto()
    REPOSITORY_EMPTY = auto()
    NO_MATCHING_FILES = auto()
    PER_ITEM_FETCH_FAILURE = auto()
    TRANSPORT_ERROR = auto()
    INVALID_REPOSITORY = auto()
    TREE_CONFLICT = auto()


@dataclass(eq=False)
class RepoIngestError(Exception):
    """Base exception for errors in the repo_ingest package."""

    category: ClassVar[ErrorCategory] = ErrorCategory.TRANSPORT_ERROR

    @property
    def message(self) -> str:
        """Human-readable description of the error."""
        return "Repository ingestion failed."

    def __str__(self) -> str:
        return self.message


# ------------------------------ Remote API errors ---------------------------


@dataclass(eq=False)
class ForgeApiError(RepoIngestError):
    """Raised when a request to the forge API does not succeed."""

    url: str
    status: int | None = None

    @property
    def message(self) -> str:
        return f"GitHub API error: {self.status} for {self.url}"


@dataclass(eq=False)
class RateLimitedError(ForgeApiError):
    """Raised when the forge API reports an exhausted request quota."""

    category: ClassVar[ErrorCategory] = ErrorCategory.RATE_LIMITED

    authenticated: bool = False
    retry_after: str | None = None
    reset_at: str | None = None

    @property
    def message(self) -> str:
        if self.authenticated:
            msg = "GitHub API rate limit exceeded. Please try again later."
        else:
            msg = (
                "GitHub API rate limit exceeded for unauthenticated requests (60/hour). "
                "Provide a GitHub token for higher limits (5000/hour)."
            )
        if self.retry_after:
            msg += f" Retry after {self.retry_after}s."
        elif self.reset_at:
            msg += f" Quota resets at {self.reset_at}."
        return msg


@dataclass(eq=False)
class AuthRequiredError(ForgeApiError):
    """Raised on HTTP 401, or when an authenticated call is requested without a token."""

    category: ClassVar[ErrorCategory] = ErrorCategory.AUTHENTICATION_REQUIRED

    @property
    def message(self) -> str:
        return f"Authentication required for {self.url}."


@dataclass(eq=False)
class AccessDeniedError(ForgeApiError):
    """Raised on HTTP 403 responses that carry no rate-limit signal."""

    category: ClassVar[ErrorCategory] = ErrorCategory.ACCESS_DENIED

    @property
    def message(self) -> str:
        return f"Access denied for {self.url}. The repository may be private."


@dataclass(eq=False)
class NotFoundError(ForgeApiError):
    """Raised on HTTP 404 responses."""

    category: ClassVar[ErrorCategory] = ErrorCategory.REPOSITORY_NOT_FOUND

    @property
    def message(self) -> str:
        return f"Resource not found: {self.url}"


@dataclass(eq=False)
class HttpStatusError(ForgeApiError):
    """Raised for any other unsuccessful HTTP status."""


@dataclass(eq=False)
class TransportError(ForgeApiError):
    """Raised when the request never produced a response (timeout, connection reset)."""

    reason: str = ""

    @property
    def message(self) -> str:
        return f"Network error while requesting {self.url}: {self.reason}"


@dataclass(eq=False)
class MalformedResponseError(ForgeApiError):
    """Raised when a response body cannot be decoded."""

    reason: str = ""

    @property
    def message(self) -> str:
        return f"Malformed response from {self.url}: {self.reason}"


# ------------------------------ Pipeline errors -----------------------------


@dataclass(eq=False)
class InvalidRepositoryError(RepoIngestError):
    """Raised when a repository identifier is neither `owner/name` nor a forge URL."""

    category: ClassVar[ErrorCategory] = ErrorCategory.INVALID_REPOSITORY

    identifier: str

    @property
    def message(self) -> str:
        return f"Invalid repository format '{self.identifier}'. Use 'owner/repo' or a full URL."


@dataclass(eq=False)
class IngestionError(RepoIngestError):
    """Terminal failure of an ingestion run, with repository context."""

    repository: str
    ref: str | None = None


@dataclass(eq=False)
class AuthenticationRequiredError(IngestionError):
    """Raised when the repository is private and no credential is available."""

    category: ClassVar[ErrorCategory] = ErrorCategory.AUTHENTICATION_REQUIRED

    @property
    def message(self) -> str:
        return f"Repository {self.repository} is private. A GitHub token is required to access it."


@dataclass(eq=False)
class RepositoryNotFoundError(IngestionError):
    """Raised when repository metadata cannot be found."""

    category: ClassVar[ErrorCategory] = ErrorCategory.REPOSITORY_NOT_FOUND

    @property
    def message(self) -> str:
        return f"Repository not found: {self.repository}"


@dataclass(eq=False)
class ReferenceNotFoundError(IngestionError):
    """Raised when the branch or tag does not exist."""

    category: ClassVar[ErrorCategory] = ErrorCategory.REFERENCE_NOT_FOUND

    @property
    def message(self) -> str:
        return f"Branch or tag '{self.ref}' not found in {self.repository}."


@dataclass(eq=False)
class RepositoryEmptyError(IngestionError):
    """Raised when the repository has no commits or its tree has no entries."""

    category: ClassVar[ErrorCategory] = ErrorCategory.REPOSITORY_EMPTY

    @property
    def message(self) -> str:
        return f"Repository {self.repository} appears to be empty or has no commits."


@dataclass(eq=False)
class NoMatchingFilesError(IngestionError):
    """Raised when filtering leaves no candidate file to retrieve."""

    category: ClassVar[ErrorCategory] = ErrorCategory.NO_MATCHING_FILES

    extensions: tuple[str, ...] = ()

    @property
    def message(self) -> str:
        msg = f"No matching source files found in '{self.ref}'."
        if self.extensions:
            msg += f" (Checked: {', '.join(self.extensions)})"
        return msg


@dataclass(eq=False)
class RetryExhaustedError(RepoIngestError):
    """Raised by the retry combinator once every attempt has failed."""

    category: ClassVar[ErrorCategory] = ErrorCategory.PER_ITEM_FETCH_FAILURE

    attempts: int
    last_error: Exception

    @property
    def message(self) -> str:
        return f"Gave up after {self.attempts} attempts: {self.last_error}"


@dataclass(eq=False)
class TreeConflictError(RepoIngestError):
    """Raised when two file paths would collapse onto the same tree node."""

    category: ClassVar[ErrorCategory] = ErrorCategory.TREE_CONFLICT

    path: str

    @property
    def message(self) -> str:
        return f"Conflicting entries for path '{self.path}' while building the file tree."
