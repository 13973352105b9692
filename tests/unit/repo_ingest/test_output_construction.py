from __future__ import annotations

import json

import pytest

from repo_ingest.config import IngestionResult, RetrievedFile
from repo_ingest.output_construction import build_jsonl, build_markdown, chunk_content


def result() -> IngestionResult:
    return IngestionResult(
        repository="octo/app",
        ref="main",
        files=(
            RetrievedFile(path="src/app.py", content="print('hi')\n", language="python", size=12),
            RetrievedFile(path="NOTES", content="plain", language=None, size=5),
        ),
        total_bytes=17,
        summary="Imported 2 files from main.",
    )


@pytest.mark.unit
def test_chunk_content_splits_on_lines() -> None:
    text = "a\nbb\nccc\n"

    assert list(chunk_content(text, 5)) == [(1, 2, "a\nbb\n"), (3, 3, "ccc\n")]
    assert list(chunk_content("", 10)) == [(0, 0, "")]


@pytest.mark.unit
def test_build_markdown_includes_header_tree_and_files() -> None:
    md = build_markdown(result())

    assert md.startswith("# Repository Export for LLM\n")
    assert "repository=octo/app\n" in md
    assert "truncated=false\n" in md
    assert "> Imported 2 files from main." in md
    assert "├── src/\n│   └── app.py\n└── NOTES" in md
    assert "## src/app.py size=12\n```python\nprint('hi')\n```" in md
    assert "## NOTES size=5\n```text\nplain\n```" in md
    assert md.endswith("```\n")


@pytest.mark.unit
def test_build_jsonl_emits_one_object_per_chunk() -> None:
    lines = build_jsonl(result(), chunk_chars=1000).splitlines()

    records = [json.loads(line) for line in lines]
    assert [r["path"] for r in records] == ["src/app.py", "NOTES"]
    assert records[0]["repository"] == "octo/app"
    assert records[0]["language"] == "python"
    assert records[0]["start_line"] == 1
    assert records[1]["text"] == "plain"


@pytest.mark.unit
def test_chunk_content_keeps_long_lines_whole() -> None:
    assert list(chunk_content("x" * 12 + "\ny\n", 5)) == [(1, 1, "x" * 12 + "\n"), (2, 2, "y\n")]
