from __future__ import annotations

import fnmatch
from typing import TYPE_CHECKING

from repo_ingest.config import IGNORED_PATTERNS, SUPPORTED_EXTENSIONS, extension_of

if TYPE_CHECKING:
    import re
    from collections.abc import Iterable, Sequence


def normalize_path(path: str) -> str:
    """Normalize a forge path to POSIX separators without leading or trailing slashes."""
    return path.strip().replace("\\", "/").strip("/")


def normalize_globs(globs: Sequence[str]) -> list[str]:
    """Normalize a sequence of path glob patterns.

    Normalize a sequence of glob patterns by stripping whitespace and
    replacing backslashes with forward slashes.

    Args:
        globs (Sequence[str]): the glob patterns to normalize

    Returns:
        list[str]: the normalized glob patterns
    """
    out: list[str] = []
    for g in globs:
        g2 = (g or "").strip()
        if not g2:
            continue
        out.append(g2.replace("\\", "/"))
    return out


def match_any_glob(rel: str, globs: Sequence[str]) -> bool:
    """Check if a relative path matches any of the provided glob patterns.

    Args:
        rel (str): the relative path to check
        globs (Sequence[str]): the glob patterns to match against

    Returns:
        bool: True if `rel` matches any pattern in `globs`, False otherwise
    """
    return any(fnmatch.fnmatch(rel, g) for g in globs)


def normalize_extensions(extensions: Iterable[str]) -> frozenset[str]:
    """Lower-case extensions and make sure each one starts with a dot.

    Args:
        extensions (Iterable[str]): values such as "py", ".PY" or " .ts "

    Returns:
        frozenset[str]: e.g. {".py", ".ts"}
    """
    out: set[str] = set()
    for ext in extensions:
        e = (ext or "").strip().lower()
        if not e:
            continue
        out.add(e if e.startswith(".") else f".{e}")
    return frozenset(out)


def is_ignored(
    path: str,
    patterns: Sequence[re.Pattern[str]] = IGNORED_PATTERNS,
    exclude_globs: Sequence[str] = (),
) -> bool:
    """Check whether a path falls under an ignore pattern or a user exclude glob.

    Patterns are searched anywhere in the full relative path; globs must
    match the whole path, as with `fnmatch`.

    Args:
        path (str): the relative path to test
        patterns (Sequence[re.Pattern[str]]): compiled ignore patterns
        exclude_globs (Sequence[str]): normalized exclude globs

    Returns:
        bool: True if the path must be dropped
    """
    if any(p.search(path) for p in patterns):
        return True
    return bool(exclude_globs) and match_any_glob(path, exclude_globs)


def is_supported(path: str, extensions: frozenset[str] = SUPPORTED_EXTENSIONS) -> bool:
    """Check the case-insensitive extension of a path against the supported set."""
    ext = extension_of(path)
    return bool(ext) and ext in extensions
