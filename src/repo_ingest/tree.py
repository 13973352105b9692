from __future__ import annotations

from typing import TYPE_CHECKING

from repo_ingest.config import FileTreeNode, NodeKind
from repo_ingest.exceptions import TreeConflictError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from repo_ingest.config import RetrievedFile


def node_sort_key(node: FileTreeNode) -> tuple[bool, str, str]:
    """Directories first, then by case-folded name, ties broken by the exact name."""
    return (node.kind is not NodeKind.DIRECTORY, node.name.lower(), node.name)


class _DirBuilder:
    """Mutable directory used during construction, indexed by child name."""

    __slots__ = ("dirs", "files", "name", "path")

    def __init__(self, name: str, path: str) -> None:
        self.name = name
        self.path = path
        self.dirs: dict[str, _DirBuilder] = {}
        self.files: dict[str, FileTreeNode] = {}

    def freeze(self) -> list[FileTreeNode]:
        children = [
            FileTreeNode(name=d.name, path=d.path, kind=NodeKind.DIRECTORY, children=tuple(d.freeze()))
            for d in self.dirs.values()
        ]
        children.extend(self.files.values())
        return sorted(children, key=node_sort_key)


def build_file_tree(files: Iterable[RetrievedFile]) -> list[FileTreeNode]:
    """Build a sorted directory/file forest from retrieved file paths.

    Paths are split on "/" only; any other character, backslash included,
    belongs to a segment name. Intermediate directories are created lazily
    from the segments, so every directory has at least one file below it.
    Each level keeps a name index, which makes construction linear in the
    number of segments.
    Input order does not matter: every level is sorted directories first,
    then by name.

    Args:
        files (Iterable[RetrievedFile]): retrieved files with unique paths

    Raises:
        TreeConflictError: if a path repeats, has an empty segment, or is both
            a file and a directory

    Returns:
        list[FileTreeNode]: the top-level nodes
    """
    root = _DirBuilder("", "")
    for f in files:
        parts = f.path.split("/")
        if not all(parts):
            raise TreeConflictError(path=f.path)
        cur = root
        for i, part in enumerate(parts[:-1]):
            if part in cur.files:
                raise TreeConflictError(path="/".join(parts[: i + 1]))
            nxt = cur.dirs.get(part)
            if nxt is None:
                nxt = _DirBuilder(part, "/".join(parts[: i + 1]))
                cur.dirs[part] = nxt
            cur = nxt
        leaf = parts[-1]
        if leaf in cur.files or leaf in cur.dirs:
            raise TreeConflictError(path="/".join(parts))
        cur.files[leaf] = FileTreeNode(
            name=leaf,
            path=f.path,
            kind=NodeKind.FILE,
            size=f.size,
            language=f.language,
            is_supported=True,
        )
    return root.freeze()


def iter_file_nodes(nodes: Iterable[FileTreeNode]) -> Iterator[FileTreeNode]:
    """Yield file nodes depth-first, in tree order."""
    for node in nodes:
        if node.kind is NodeKind.DIRECTORY:
            yield from iter_file_nodes(node.children)
        else:
            yield node


def collect_selected_files(
    tree: Sequence[FileTreeNode],
    selected_paths: Iterable[str],
    files: Iterable[RetrievedFile],
) -> list[RetrievedFile]:
    """Return the retrieved files whose paths are selected, in tree order.

    Args:
        tree (Sequence[FileTreeNode]): a tree built by `build_file_tree`
        selected_paths (Iterable[str]): paths of selected file nodes
        files (Iterable[RetrievedFile]): the files the tree was built from

    Returns:
        list[RetrievedFile]: the selected files
    """
    selected = set(selected_paths)
    by_path = {f.path: f for f in files}
    return [by_path[n.path] for n in iter_file_nodes(tree) if n.path in selected and n.path in by_path]


def render_tree_lines(nodes: Sequence[FileTreeNode], root_name: str) -> list[str]:
    """Build a visual tree representation of a FileTreeNode forest.

    Args:
        nodes (Sequence[FileTreeNode]): the top-level nodes, already sorted
        root_name (str): the name to use for the root of the tree

    Returns:
        list[str]: a list of strings representing the tree structure, suitable for printing
    """
    lines: list[str] = [root_name]

    def walk(children: Sequence[FileTreeNode], prefix: str) -> None:
        for idx, node in enumerate(children):
            last = idx == len(children) - 1
            branch = "└── " if last else "├── "
            is_dir = node.kind is NodeKind.DIRECTORY
            lines.append(prefix + branch + node.name + ("/" if is_dir else ""))
            if is_dir:
                ext = "    " if last else "│   "
                walk(node.children, prefix + ext)

    walk(nodes, "")
    return lines

