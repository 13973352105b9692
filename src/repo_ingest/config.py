from __future__ import annotations

import re
from enum import StrEnum
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, computed_field

GITHUB_API_BASE = "https://api.github.com"

MAX_FILES = 1000
MAX_FILE_BYTES = 1024 * 1024
MAX_TOTAL_BYTES = 100 * 1024 * 1024
BATCH_SIZE = 3
MAX_ATTEMPTS = 3
BACKOFF_BASE_SECONDS = 1.0
BATCH_DELAY_SECONDS = 0.2
REQUEST_TIMEOUT_SECONDS = 15.0

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".c",
        ".cpp",
        ".css",
        ".go",
        ".gradle",
        ".h",
        ".html",
        ".java",
        ".js",
        ".json",
        ".jsp",
        ".kt",
        ".md",
        ".php",
        ".properties",
        ".py",
        ".rb",
        ".rs",
        ".scala",
        ".sql",
        ".ts",
        ".tsx",
        ".xml",
        ".yaml",
        ".yml",
    },
)

EXT2LANG: dict[str, str] = {
    ".c": "c",
    ".cpp": "cpp",
    ".css": "css",
    ".go": "go",
    ".gradle": "gradle",
    ".h": "c",
    ".html": "html",
    ".java": "java",
    ".js": "javascript",
    ".json": "json",
    ".jsp": "jsp",
    ".jsx": "javascript",
    ".kt": "kotlin",
    ".md": "markdown",
    ".php": "php",
    ".properties": "properties",
    ".py": "python",
    ".rb": "ruby",
    ".rs": "rust",
    ".scala": "scala",
    ".sql": "sql",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".xml": "xml",
    ".yaml": "yaml",
    ".yml": "yaml",
}

# Matched with `re.search` against the full relative path of each blob.
IGNORED_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p)
    for p in (
        r"(^|/)\.git/",
        r"(^|/)node_modules/",
        r"(^|/)(dist|build|target|out|coverage|\.next|\.nuxt)/",
        r"(^|/)(\.venv|venv|__pycache__|\.mypy_cache|\.pytest_cache|\.ruff_cache)/",
        r"(^|/)(\.vscode|\.idea)/",
        r"(^|/)(package-lock\.json|yarn\.lock|pnpm-lock\.yaml|npm-shrinkwrap\.json)$",
        r"\.lock$",
        r"(^|/)\.env(\.[^/]*)?$",
        r"\.(log|tmp|cache)$",
        r"(^|/)(\.DS_Store|Thumbs\.db)$",
    )
)


def extension_of(path: str) -> str:
    """Return the lower-cased extension of the file name in `path`, dot included.

    Args:
        path (str): a POSIX relative path such as "src/Main.JAVA"

    Returns:
        str: ".java" for the example above, or "" when the name has no dot
    """
    name = PurePosixPath(path).name
    idx = name.rfind(".")
    if idx == -1:
        return ""
    return name[idx:].lower()


def detect_language(path: str) -> str | None:
    """Map a path to a language tag, or None when the extension is unknown."""
    return EXT2LANG.get(extension_of(path))


class EntryKind(StrEnum):
    """Kind of an entry in the remote recursive tree listing."""

    BLOB = "blob"
    TREE = "tree"


class NodeKind(StrEnum):
    """Kind of a node in the selection tree."""

    FILE = "file"
    DIRECTORY = "directory"


class TreeEntry(BaseModel):
    """One entry of the recursive tree listing returned by the forge.

    Attributes:
        path: Path relative to the repository root, POSIX separators.
        kind: Blob (file) or tree (directory).
        size: Size in bytes as reported by the forge, when known.
        content_ref: Opaque handle (the blob SHA) used to fetch the content.
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., min_length=1, description="Path relative to the repository root")
    kind: EntryKind = Field(..., description="Entry kind")
    size: int | None = Field(default=None, ge=0, description="Reported size in bytes")
    content_ref: str = Field(default="", description="Blob SHA")


class TreeListing(BaseModel):
    """The raw recursive listing for a reference, with the forge's own truncation flag."""

    model_config = ConfigDict(frozen=True)

    entries: tuple[TreeEntry, ...] = ()
    truncated: bool = False


class RetrievedFile(BaseModel):
    """A successfully fetched blob.

    Attributes:
        path: Path relative to the repository root.
        content: Decoded text content.
        language: Language tag derived from the extension, if known.
        size: Number of content bytes as downloaded.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    content: str
    language: str | None = None
    size: int = Field(..., ge=0)


class IngestionBudget(BaseModel):
    """Hard ceilings applied to a single ingestion run."""

    model_config = ConfigDict(frozen=True)

    max_files: int = Field(default=MAX_FILES, gt=0)
    max_file_bytes: int = Field(default=MAX_FILE_BYTES, gt=0)
    max_total_bytes: int = Field(default=MAX_TOTAL_BYTES, gt=0)


class FetchFailure(BaseModel):
    """A blob that could not be retrieved after every retry attempt."""

    model_config = ConfigDict(frozen=True)

    path: str
    attempts: int = Field(..., ge=1)
    reason: str = ""


class IngestionResult(BaseModel):
    """Final product of an ingestion run.

    `truncated` is derived: the remote listing was cut short, the file-count
    limit dropped candidates, the byte budget ran out, or the run was
    cancelled before every candidate was fetched.
    """

    model_config = ConfigDict(frozen=True)

    repository: str
    ref: str
    is_public: bool = True
    files: tuple[RetrievedFile, ...] = ()
    failures: tuple[FetchFailure, ...] = ()
    total_bytes: int = Field(default=0, ge=0)
    listing_truncated: bool = False
    limit_truncated: bool = False
    budget_exhausted: bool = False
    cancelled: bool = False
    summary: str = ""

    @computed_field
    @property
    def failed_count(self) -> int:
        """Number of candidates dropped after exhausting their retries."""
        return len(self.failures)

    @computed_field
    @property
    def truncated(self) -> bool:
        """Whether some eligible file was not ingested because of a limit."""
        return self.listing_truncated or self.limit_truncated or self.budget_exhausted or self.cancelled


class FileTreeNode(BaseModel):
    """A node of the hierarchical selection tree.

    Directories only exist as ancestors of at least one file, so `size`,
    `language` and `is_supported` are only meaningful on file nodes.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    kind: NodeKind
    children: tuple[FileTreeNode, ...] = ()
    size: int | None = None
    language: str | None = None
    is_supported: bool = False

    @property
    def is_directory(self) -> bool:
        return self.kind is NodeKind.DIRECTORY
