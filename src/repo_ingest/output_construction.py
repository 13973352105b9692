from __future__ import annotations

import io
import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from repo_ingest.tree import build_file_tree, render_tree_lines

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from repo_ingest.config import FileTreeNode, IngestionResult


def now_iso() -> str:
    """Return the current date and time in ISO 8601 format with timezone.

    Returns:
        str: the current date and time in ISO 8601 format with timezone
    """
    return datetime.now(UTC).astimezone().isoformat(timespec="seconds")


def build_markdown(
    result: IngestionResult,
    tree: Sequence[FileTreeNode] | None = None,
    *,
    compact: bool = False,
) -> str:
    """Build a markdown string representing the ingested repository.

    The markdown includes a header with run information, a visual tree of the
    retrieved files, and one fenced section per file in result order.

    Args:
        result (IngestionResult): the ingestion result to export
        tree (Sequence[FileTreeNode] | None): a prebuilt tree; built from `result.files` when None
        compact (bool): whether to drop the blank line between file sections

    Returns:
        str: the generated markdown string representing the repository contents
    """
    if tree is None:
        tree = build_file_tree(result.files)
    out = io.StringIO()
    out.write("# Repository Export for LLM\n")
    out.write(f"repository={result.repository}\n")
    out.write(f"ref={result.ref}\n")
    out.write(f"generated_at={now_iso()}\n")
    out.write(f"files={len(result.files)}\n")
    out.write(f"failed={result.failed_count}\n")
    out.write(f"truncated={str(result.truncated).lower()}\n\n")
    out.write(f"> {result.summary}\n\n")

    out.write("## Structure\n")
    out.write("```text\n")
    out.write("\n".join(render_tree_lines(tree, result.repository)))
    out.write("\n```\n\n")

    for f in result.files:
        out.write(f"## {f.path} size={f.size}\n")
        lang = f.language or "text"
        body = f.content.rstrip("\n")
        if compact:
            out.write(f"```{lang}\n{body}\n```\n")
        else:
            out.write(f"```{lang}\n{body}\n```\n\n")

    return out.getvalue().rstrip() + "\n"


def chunk_content(text: str, chunk_chars: int) -> Iterator[tuple[int, int, str]]:
    """Split file content into line-aligned chunks of at most `chunk_chars` characters.

    Line endings are kept as downloaded. A single line longer than
    `chunk_chars` becomes its own chunk rather than being cut.

    Args:
        text (str): the file content
        chunk_chars (int): the soft size ceiling of each chunk

    Yields:
        tuple[int, int, str]: 1-based first line, last line, and chunk text;
            `(0, 0, "")` once for empty content
    """
    if not text:
        yield (0, 0, "")
        return
    first = 1
    pending: list[str] = []
    size = 0
    for lineno, line in enumerate(text.splitlines(keepends=True), start=1):
        if pending and size + len(line) > chunk_chars:
            yield (first, lineno - 1, "".join(pending))
            first, pending, size = lineno, [], 0
        pending.append(line)
        size += len(line)
    yield (first, first + len(pending) - 1, "".join(pending))


def build_jsonl(result: IngestionResult, *, chunk_chars: int) -> str:
    """Serialize retrieved files as JSON lines, one object per line-aligned chunk.

    Args:
        result (IngestionResult): the ingestion result to export
        chunk_chars (int): the maximum number of characters per chunk

    Returns:
        str: newline-delimited JSON objects
    """
    buf = io.StringIO()
    for f in result.files:
        for start, end, chunk in chunk_content(f.content, chunk_chars=chunk_chars):
            item = {
                "repository": result.repository,
                "ref": result.ref,
                "path": f.path,
                "language": f.language,
                "size": f.size,
                "start_line": start,
                "end_line": end,
                "text": chunk,
            }
            buf.write(json.dumps(item, ensure_ascii=False) + "\n")
    return buf.getvalue()
