"""Budgeted, batched download of blob contents."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from repo_ingest.config import (
    BACKOFF_BASE_SECONDS,
    BATCH_DELAY_SECONDS,
    BATCH_SIZE,
    MAX_ATTEMPTS,
    FetchFailure,
    RetrievedFile,
    detect_language,
)
from repo_ingest.exceptions import ForgeApiError, RetryExhaustedError
from repo_ingest.logging import logger
from repo_ingest.progress import as_reporter
from repo_ingest.retry import retry_async

if TYPE_CHECKING:
    from collections.abc import Sequence

    from repo_ingest.client import ForgeClient
    from repo_ingest.config import IngestionBudget, TreeEntry
    from repo_ingest.progress import ProgressCallback, ProgressReporter
    from repo_ingest.resolver import ResolvedRepository
    from repo_ingest.retry import SleepFn


class RetrievalOutcome(BaseModel):
    """What the retriever committed, and why it stopped."""

    model_config = ConfigDict(frozen=True)

    files: tuple[RetrievedFile, ...] = ()
    failures: tuple[FetchFailure, ...] = ()
    total_bytes: int = 0
    budget_exhausted: bool = False
    cancelled: bool = False
    batches_run: int = 0


def batched(items: Sequence[TreeEntry], size: int) -> list[Sequence[TreeEntry]]:
    """Split `items` into consecutive slices of at most `size` elements."""
    if size < 1:
        msg = f"batch size must be >= 1, got {size}"
        raise ValueError(msg)
    return [items[i : i + size] for i in range(0, len(items), size)]


async def fetch_file(client: ForgeClient, resolved: ResolvedRepository, entry: TreeEntry) -> RetrievedFile:
    """Download one blob and wrap it as a RetrievedFile (single attempt)."""
    raw = await client.get_blob(resolved.repo.owner, resolved.repo.name, entry.content_ref)
    return RetrievedFile(
        path=entry.path,
        content=raw.decode("utf-8", errors="replace"),
        language=detect_language(entry.path),
        size=len(raw),
    )


async def fetch_with_retry(
    client: ForgeClient,
    resolved: ResolvedRepository,
    entry: TreeEntry,
    *,
    max_attempts: int = MAX_ATTEMPTS,
    backoff_base: float = BACKOFF_BASE_SECONDS,
    sleep: SleepFn = asyncio.sleep,
) -> RetrievedFile | FetchFailure:
    """Fetch one blob with exponential backoff.

    Never raises for API or network errors: a blob that fails every attempt
    comes back as a FetchFailure.
    """

    def on_retry(attempt: int, error: Exception, delay: float) -> None:
        logger.warning("fetch_retry", path=entry.path, attempt=attempt, delay=delay, error=str(error))

    try:
        return await retry_async(
            lambda: fetch_file(client, resolved, entry),
            attempts=max_attempts,
            base_delay=backoff_base,
            retry_on=(ForgeApiError,),
            sleep=sleep,
            on_retry=on_retry,
        )
    except RetryExhaustedError as e:
        logger.error("fetch_failed", path=entry.path, attempts=e.attempts, error=str(e.last_error))
        return FetchFailure(path=entry.path, attempts=e.attempts, reason=str(e.last_error))


async def retrieve_contents(
    client: ForgeClient,
    resolved: ResolvedRepository,
    candidates: Sequence[TreeEntry],
    budget: IngestionBudget,
    *,
    batch_size: int = BATCH_SIZE,
    max_attempts: int = MAX_ATTEMPTS,
    backoff_base: float = BACKOFF_BASE_SECONDS,
    batch_delay: float = BATCH_DELAY_SECONDS,
    progress: ProgressReporter | ProgressCallback | None = None,
    cancel_event: asyncio.Event | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> RetrievalOutcome:
    """Download candidate contents in sequential batches of concurrent fetches.

    Items of a batch are fetched concurrently; their results are merged
    serially, in candidate order, once the whole batch has resolved. The
    first item that would push the committed total over `max_total_bytes`
    is discarded together with the files after it in its batch, and no
    further batch is started. Failures of that batch are still recorded,
    so every attempted fetch ends up either committed or reported.

    Args:
        client (ForgeClient): the API client
        resolved (ResolvedRepository): repository and reference
        candidates (Sequence[TreeEntry]): planned entries, in order
        budget (IngestionBudget): the cumulative byte budget
        batch_size (int): concurrent fetches per batch
        max_attempts (int): attempt ceiling per blob
        backoff_base (float): first retry delay in seconds
        batch_delay (float): pause between batches in seconds
        progress: optional status sink
        cancel_event (asyncio.Event | None): checked before each batch
        sleep: coroutine used for backoff and inter-batch pauses

    Returns:
        RetrievalOutcome: committed files, failures and stop reasons
    """
    notify = as_reporter(progress)
    files: list[RetrievedFile] = []
    failures: list[FetchFailure] = []
    total = 0
    budget_exhausted = False
    cancelled = False
    batches_run = 0

    batches = batched(candidates, batch_size)
    for index, batch in enumerate(batches):
        if cancel_event is not None and cancel_event.is_set():
            cancelled = True
            logger.info("retrieval_cancelled", committed=len(files))
            break
        if total >= budget.max_total_bytes:
            budget_exhausted = True
            notify(f"Stopping: reached {budget.max_total_bytes} byte size limit")
            break

        notify(f"Downloading files ({len(files)}/{len(candidates)})...")
        results = await asyncio.gather(
            *(
                fetch_with_retry(
                    client,
                    resolved,
                    entry,
                    max_attempts=max_attempts,
                    backoff_base=backoff_base,
                    sleep=sleep,
                )
                for entry in batch
            ),
        )
        batches_run += 1

        for entry, result in zip(batch, results, strict=True):
            if isinstance(result, FetchFailure):
                failures.append(result)
                continue
            if budget_exhausted:
                continue
            if total + result.size > budget.max_total_bytes:
                budget_exhausted = True
                notify(f"Skipping {entry.path}: would exceed {budget.max_total_bytes} byte size limit")
                logger.warning(
                    "budget_exhausted",
                    path=entry.path,
                    size=result.size,
                    committed=total,
                    limit=budget.max_total_bytes,
                )
                continue
            files.append(result)
            total += result.size

        if budget_exhausted:
            break
        if batch_delay > 0 and index < len(batches) - 1:
            await sleep(batch_delay)

    return RetrievalOutcome(
        files=tuple(files),
        failures=tuple(failures),
        total_bytes=total,
        budget_exhausted=budget_exhausted,
        cancelled=cancelled,
        batches_run=batches_run,
    )
