from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from repo_ingest.config import EntryKind, TreeEntry, TreeListing
from repo_ingest.exceptions import (
    HttpStatusError,
    MalformedResponseError,
    NotFoundError,
    ReferenceNotFoundError,
    RepositoryEmptyError,
)
from repo_ingest.logging import logger
from repo_ingest.progress import as_reporter

if TYPE_CHECKING:
    from repo_ingest.client import ForgeClient
    from repo_ingest.progress import ProgressCallback, ProgressReporter
    from repo_ingest.resolver import ResolvedRepository


def parse_tree_entry(item: dict[str, Any]) -> TreeEntry | None:
    """Convert one raw tree item into a TreeEntry.

    Submodules (`commit` items) and unknown kinds yield None.

    Args:
        item (dict[str, Any]): an element of the `tree` array

    Returns:
        TreeEntry | None: the entry, or None when it is neither blob nor tree
    """
    kind = item.get("type")
    if kind not in {EntryKind.BLOB, EntryKind.TREE}:
        return None
    return TreeEntry(
        path=item["path"],
        kind=EntryKind(kind),
        size=item.get("size"),
        content_ref=item.get("sha", ""),
    )


async def fetch_tree(
    client: ForgeClient,
    resolved: ResolvedRepository,
    progress: ProgressReporter | ProgressCallback | None = None,
) -> TreeListing:
    """Retrieve the complete recursive listing for the resolved reference.

    Args:
        client (ForgeClient): the API client
        resolved (ResolvedRepository): repository and reference
        progress: optional status sink

    Raises:
        ReferenceNotFoundError: on HTTP 404
        RepositoryEmptyError: on HTTP 409, or when the listing has no entries
        MalformedResponseError: when the listing cannot be parsed

    Returns:
        TreeListing: entries in forge order, with the forge's truncation flag
    """
    notify = as_reporter(progress)
    repo = resolved.repo
    notify(f"Fetching file tree ({resolved.ref})...")

    try:
        data = await client.get_tree(repo.owner, repo.name, resolved.ref)
    except NotFoundError as e:
        raise ReferenceNotFoundError(repository=repo.full_name, ref=resolved.ref) from e
    except HttpStatusError as e:
        if e.status == httpx.codes.CONFLICT:
            raise RepositoryEmptyError(repository=repo.full_name, ref=resolved.ref) from e
        raise

    raw_items = data.get("tree") or []
    truncated = bool(data.get("truncated", False))
    if not raw_items:
        raise RepositoryEmptyError(repository=repo.full_name, ref=resolved.ref)

    entries: list[TreeEntry] = []
    try:
        for item in raw_items:
            entry = parse_tree_entry(item)
            if entry is not None:
                entries.append(entry)
    except (KeyError, TypeError, AttributeError, ValidationError) as e:
        raise MalformedResponseError(url=f"/repos/{repo.full_name}/git/trees/{resolved.ref}", reason=str(e)) from e

    if truncated:
        logger.warning("tree_truncated_by_forge", repository=repo.full_name, ref=resolved.ref)
    logger.info("tree_fetched", repository=repo.full_name, ref=resolved.ref, entries=len(entries), truncated=truncated)
    return TreeListing(entries=tuple(entries), truncated=truncated)
