"""
repo_ingest: pull a remote repository into a budgeted, analyzable file set.

Overview
--------
The command resolves a repository on the forge (GitHub REST API), lists its
tree recursively, keeps supported source files under the configured limits,
downloads them in small retried batches, then prints the resulting file tree
and a one-line summary.

With `--output`, the retrieved files are also exported:

1) **Markdown (`.md`)**: header, structure tree and one fenced block per file.
2) **JSONL (`.jsonl`)**: line-aligned chunks, one JSON object per line.

Settings come from, in increasing priority: defaults, `.env` / environment
(`GITHUB_TOKEN`, `REPO_INGEST_*`) or a YAML `--config` file, then flags.

Usage
-----
    repo-ingest octo/app
    repo-ingest https://github.com/octo/app --ref v1.2.0 --output app.md
    repo-ingest octo/app --max-files 200 --exclude "docs/**" --output app.jsonl
    repo-ingest octo/app --list-branches
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from repo_ingest import __version__
from repo_ingest.aggregator import describe_failure
from repo_ingest.client import ForgeClient
from repo_ingest.exceptions import RepoIngestError
from repo_ingest.logging import setup_logging
from repo_ingest.output_construction import build_jsonl, build_markdown
from repo_ingest.pipeline import ingest_repository_sync
from repo_ingest.resolver import list_branches, parse_repository
from repo_ingest.settings import Settings
from repo_ingest.tree import build_file_tree, render_tree_lines

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = setup_logging()


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse command-line arguments into Settings.

    Flags left unset do not override values coming from the environment or
    from the `--config` file.

    Args:
        argv (Sequence[str] | None): arguments, `sys.argv[1:]` when None

    Returns:
        Settings: the merged settings
    """
    p = argparse.ArgumentParser(
        prog="repo-ingest",
        description="Ingest a remote repository into a budgeted file set.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("repo", nargs="?", default=None, help="owner/name or repository URL.")
    p.add_argument("--ref", type=str, default=None, help="Branch or tag (default branch when omitted).")
    p.add_argument("--token", type=str, default=None, help="GitHub token (defaults to $GITHUB_TOKEN).")
    p.add_argument("--api-base", type=str, default=None, help="Forge API base URL.")
    p.add_argument("--config", type=Path, default=None, help="YAML settings file.")

    limits = p.add_argument_group("limits")
    limits.add_argument("--max-files", type=int, default=None, help="Max files retrieved.")
    limits.add_argument("--max-file-bytes", type=int, default=None, help="Skip files at or above this size.")
    limits.add_argument("--max-total-bytes", type=int, default=None, help="Cumulative byte budget.")
    limits.add_argument("--batch-size", type=int, default=None, help="Concurrent fetches per batch.")
    limits.add_argument("--max-attempts", type=int, default=None, help="Attempts per file.")
    limits.add_argument("--backoff-base", type=float, default=None, help="First retry delay (s).")
    limits.add_argument("--batch-delay", type=float, default=None, help="Pause between batches (s).")
    limits.add_argument("--timeout", type=float, default=None, help="Per-request timeout (s).")

    filters = p.add_argument_group("filters")
    filters.add_argument(
        "--exclude",
        dest="exclude_glob",
        action="append",
        default=None,
        help="Exclude glob (repeatable).",
    )
    filters.add_argument(
        "--extension",
        dest="extensions",
        action="append",
        default=None,
        help="Supported extension (repeatable, replaces the default set).",
    )

    export = p.add_argument_group("export")
    export.add_argument("--output", type=Path, default=None, help="Output file (.md or .jsonl).")
    export.add_argument("--format", type=str, choices=["md", "jsonl"], default=None, help="Force format.")
    export.add_argument("--chunk-chars", type=int, default=None, help="Chunk size for jsonl.")

    p.add_argument("--log-file", type=str, default=None, help="Log file path.")
    p.add_argument("--list-branches", action="store_true", default=None, help="List branches and exit.")

    args = vars(p.parse_args(argv))
    config = args.pop("config")
    if config is not None:
        return Settings.from_yaml(config, **args)
    return Settings.from_env(**args)


def print_progress(message: str) -> None:
    print(message, file=sys.stderr)


async def fetch_branch_names(settings: Settings) -> list[str]:
    """List branch names of `settings.repo` with a short-lived client."""
    repo = parse_repository(settings.repo)
    async with ForgeClient(settings.token_value, api_base=settings.api_base, timeout=settings.timeout) as client:
        return await list_branches(client, repo)


def write_export(settings: Settings, output: Path, result_text: str) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(result_text, encoding="utf-8")
    logger.info("export_written", output=str(output), format=settings.format or output.suffix.lstrip("."))


def main(argv: Sequence[str] | None = None) -> int:
    settings = parse_args(argv)
    if settings.log_file:
        setup_logging(settings.log_file)

    if not settings.repo:
        print("error: a repository (owner/name or URL) is required", file=sys.stderr)
        return 2

    try:
        if settings.list_branches:
            for name in asyncio.run(fetch_branch_names(settings)):
                print(name)
            return 0
        result = ingest_repository_sync(settings.repo, settings=settings, progress=print_progress)
        tree = build_file_tree(result.files)
    except RepoIngestError as e:
        logger.error("ingestion_failed", repository=settings.repo, category=str(e.category), error=e.message)
        print(describe_failure(e), file=sys.stderr)
        return 1

    print("\n".join(render_tree_lines(tree, result.repository)))
    print(result.summary)

    if settings.output is not None:
        out_path = Path(settings.output)
        fmt = (settings.format or "").strip().lower()
        if not fmt:
            fmt = "jsonl" if out_path.suffix.lower() == ".jsonl" else "md"
        if fmt == "md":
            content = build_markdown(result, tree)
        else:
            content = build_jsonl(result, chunk_chars=settings.chunk_chars)
        write_export(settings, out_path, content)
        print(f"Wrote {out_path} format={fmt} files={len(result.files)}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
