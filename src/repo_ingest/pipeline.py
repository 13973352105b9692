"""End-to-end ingestion: resolve, list, plan, retrieve, aggregate."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from repo_ingest.aggregator import build_result
from repo_ingest.client import ForgeClient
from repo_ingest.listing import fetch_tree
from repo_ingest.planner import plan_candidates
from repo_ingest.progress import as_reporter
from repo_ingest.resolver import parse_repository, resolve_repository
from repo_ingest.retriever import retrieve_contents
from repo_ingest.settings import Settings

if TYPE_CHECKING:
    import httpx

    from repo_ingest.config import IngestionResult
    from repo_ingest.progress import ProgressCallback, ProgressReporter
    from repo_ingest.retry import SleepFn


async def ingest_repository(
    identifier: str,
    *,
    ref: str | None = None,
    token: str | None = None,
    settings: Settings | None = None,
    progress: ProgressReporter | ProgressCallback | None = None,
    cancel_event: asyncio.Event | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> IngestionResult:
    """Ingest a remote repository into an in-memory, budgeted file set.

    Each call is a fresh run: a new client, a new listing, a new result.

    Args:
        identifier (str): `owner/name` or a repository URL
        ref (str | None): branch or tag; falls back to `settings.ref`, then the default branch
        token (str | None): forge token; falls back to `settings.token`
        settings (Settings | None): limits and filters; defaults apply when None
        progress: optional sink receiving human-readable status lines
        cancel_event (asyncio.Event | None): stops retrieval before the next batch when set
        transport (httpx.AsyncBaseTransport | None): custom transport, used by tests
        sleep: coroutine used for backoff and inter-batch pauses

    Raises:
        RepoIngestError: a classified terminal failure (see `repo_ingest.exceptions`)

    Returns:
        IngestionResult: the retrieved files, truncation flags and summary
    """
    settings = settings or Settings()
    notify = as_reporter(progress)
    notify("Parsing repository info...")
    repo = parse_repository(identifier)

    async with ForgeClient(
        token or settings.token_value,
        api_base=settings.api_base,
        timeout=settings.timeout,
        transport=transport,
    ) as client:
        resolved = await resolve_repository(client, repo, ref or settings.ref or None, notify)
        listing = await fetch_tree(client, resolved, notify)

        notify("Filtering source files...")
        plan = plan_candidates(
            listing,
            settings.budget,
            resolved,
            extensions=settings.extensions,
            exclude_globs=settings.exclude_glob,
        )

        outcome = await retrieve_contents(
            client,
            resolved,
            plan.candidates,
            settings.budget,
            batch_size=settings.batch_size,
            max_attempts=settings.max_attempts,
            backoff_base=settings.backoff_base,
            batch_delay=settings.batch_delay,
            progress=notify,
            cancel_event=cancel_event,
            sleep=sleep,
        )

    notify("Finalizing...")
    return build_result(resolved, plan, outcome)


def ingest_repository_sync(identifier: str, **kwargs: object) -> IngestionResult:
    """Blocking wrapper around `ingest_repository` for scripts and the CLI."""
    return asyncio.run(ingest_repository(identifier, **kwargs))  # type: ignore[arg-type]
