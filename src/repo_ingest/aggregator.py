from __future__ import annotations

from typing import TYPE_CHECKING

from repo_ingest.config import IngestionResult
from repo_ingest.exceptions import ErrorCategory, RateLimitedError, RepoIngestError
from repo_ingest.logging import logger

if TYPE_CHECKING:
    from repo_ingest.planner import CandidatePlan
    from repo_ingest.resolver import ResolvedRepository
    from repo_ingest.retriever import RetrievalOutcome

TRUNCATION_NOTE = "Some files were skipped due to size/limits."

_HINTS: dict[ErrorCategory, str] = {
    ErrorCategory.RATE_LIMITED: "wait for the quota to reset or provide a GitHub token (5000 requests/hour)",
    ErrorCategory.AUTHENTICATION_REQUIRED: "provide a valid GitHub token with read access to the repository",
    ErrorCategory.ACCESS_DENIED: "check the token permissions; the repository may be private",
    ErrorCategory.REPOSITORY_NOT_FOUND: "check the owner/name spelling; private repositories also need a token",
    ErrorCategory.REFERENCE_NOT_FOUND: "check the branch or tag name, or omit it to use the default branch",
    ErrorCategory.REPOSITORY_EMPTY: "push at least one commit before importing",
    ErrorCategory.NO_MATCHING_FILES: "the repository holds no supported source file under the size limit",
    ErrorCategory.TRANSPORT_ERROR: "check the network connection and try again",
    ErrorCategory.INVALID_REPOSITORY: "use 'owner/repo' or https://github.com/owner/repo",
}


def summarize(ref: str, imported: int, failed: int, *, truncated: bool) -> str:
    """Build the one-line, human-readable outcome of a run.

    Examples:
        >>> summarize("main", 8, 2, truncated=False)
        'Imported 8 files from main (2 failed).'
        >>> summarize("main", 3, 0, truncated=True)
        'Imported 3 files from main. Some files were skipped due to size/limits.'
    """
    noun = "file" if imported == 1 else "files"
    text = f"Imported {imported} {noun} from {ref}"
    text += f" ({failed} failed)." if failed else "."
    if truncated:
        text += f" {TRUNCATION_NOTE}"
    return text


def build_result(
    resolved: ResolvedRepository,
    plan: CandidatePlan,
    outcome: RetrievalOutcome,
) -> IngestionResult:
    """Merge planning and retrieval into the final, immutable IngestionResult."""
    truncated = plan.truncated or outcome.budget_exhausted or outcome.cancelled
    result = IngestionResult(
        repository=resolved.repo.full_name,
        ref=resolved.ref,
        is_public=resolved.is_public,
        files=outcome.files,
        failures=outcome.failures,
        total_bytes=outcome.total_bytes,
        listing_truncated=plan.listing_truncated,
        limit_truncated=plan.limit_truncated,
        budget_exhausted=outcome.budget_exhausted,
        cancelled=outcome.cancelled,
        summary=summarize(resolved.ref, len(outcome.files), len(outcome.failures), truncated=truncated),
    )
    logger.info(
        "ingestion_complete",
        repository=result.repository,
        ref=result.ref,
        files=len(result.files),
        failed=result.failed_count,
        total_bytes=result.total_bytes,
        truncated=result.truncated,
    )
    return result


def describe_failure(error: RepoIngestError) -> str:
    """Render a terminal error as an actionable message.

    Args:
        error (RepoIngestError): a classified error raised by the pipeline

    Returns:
        str: "[category] message (hint: ...)"
    """
    category = error.category
    hint = _HINTS.get(category, "")
    if isinstance(error, RateLimitedError) and error.authenticated:
        hint = "wait for the quota to reset"
    text = f"[{category}] {error.message}"
    if hint:
        text += f" (hint: {hint})"
    return text
