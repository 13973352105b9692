from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from repo_ingest.config import IGNORED_PATTERNS, SUPPORTED_EXTENSIONS, EntryKind, TreeEntry
from repo_ingest.exceptions import NoMatchingFilesError
from repo_ingest.filters import is_ignored, is_supported, normalize_extensions, normalize_globs, normalize_path
from repo_ingest.logging import logger

if TYPE_CHECKING:
    import re
    from collections.abc import Iterable, Sequence

    from repo_ingest.config import IngestionBudget, TreeListing
    from repo_ingest.resolver import ResolvedRepository


class CandidatePlan(BaseModel):
    """The bounded candidate set handed to the content retriever.

    Attributes:
        candidates: Blob entries to fetch, in listing order.
        eligible_count: Entries that passed every filter, before the file-count cap.
        listing_truncated: The forge truncated the recursive listing.
        limit_truncated: The file-count cap dropped eligible entries.
    """

    model_config = ConfigDict(frozen=True)

    candidates: tuple[TreeEntry, ...]
    eligible_count: int
    listing_truncated: bool = False
    limit_truncated: bool = False

    @property
    def truncated(self) -> bool:
        return self.listing_truncated or self.limit_truncated


def plan_candidates(
    listing: TreeListing,
    budget: IngestionBudget,
    resolved: ResolvedRepository,
    *,
    extensions: Iterable[str] = SUPPORTED_EXTENSIONS,
    ignore_patterns: Sequence[re.Pattern[str]] = IGNORED_PATTERNS,
    exclude_globs: Sequence[str] = (),
) -> CandidatePlan:
    """Reduce the raw listing to a bounded, relevant, deterministic candidate set.

    The steps run in a fixed order:

    1. drop `tree` entries (directories are implicit);
    2. drop paths matching an ignore pattern or an exclude glob;
    3. drop paths whose extension is not supported;
    4. drop entries whose reported size is at or above `max_file_bytes`;
    5. keep at most `max_files` entries.

    A path listed twice is kept once, at its first position.

    Args:
        listing (TreeListing): the raw recursive listing
        budget (IngestionBudget): file-count and per-file limits
        resolved (ResolvedRepository): repository and reference, for error context
        extensions (Iterable[str]): supported extensions
        ignore_patterns (Sequence[re.Pattern[str]]): regexes searched in each path
        exclude_globs (Sequence[str]): fnmatch globs matched against each path

    Raises:
        NoMatchingFilesError: if no candidate survives the filters

    Returns:
        CandidatePlan: the candidates and the truncation flags
    """
    exts = normalize_extensions(extensions)
    globs = normalize_globs(exclude_globs)

    blobs = [e for e in listing.entries if e.kind is EntryKind.BLOB]
    kept = [e for e in blobs if not is_ignored(normalize_path(e.path), ignore_patterns, globs)]
    after_ignore = len(kept)
    kept = [e for e in kept if is_supported(e.path, exts)]
    after_extension = len(kept)
    kept = [e for e in kept if (e.size or 0) < budget.max_file_bytes]

    seen: set[str] = set()
    eligible: list[TreeEntry] = []
    for entry in kept:
        if entry.path in seen:
            continue
        seen.add(entry.path)
        eligible.append(entry)

    candidates = eligible[: budget.max_files]
    limit_truncated = len(eligible) > len(candidates)

    logger.info(
        "candidates_planned",
        repository=resolved.repo.full_name,
        ref=resolved.ref,
        blobs=len(blobs),
        after_ignore=after_ignore,
        after_extension=after_extension,
        eligible=len(eligible),
        candidates=len(candidates),
        limit_truncated=limit_truncated,
        listing_truncated=listing.truncated,
    )

    if not candidates:
        raise NoMatchingFilesError(
            repository=resolved.repo.full_name,
            ref=resolved.ref,
            extensions=tuple(sorted(exts)),
        )

    return CandidatePlan(
        candidates=tuple(candidates),
        eligible_count=len(eligible),
        listing_truncated=listing.truncated,
        limit_truncated=limit_truncated,
    )
