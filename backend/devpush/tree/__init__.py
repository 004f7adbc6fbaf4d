from devpush.tree.diff import DiffResult, diff
from devpush.tree.snapshot import (
    DEFAULT_EXCLUDES,
    DirEntry,
    DirList,
    file_sha1,
    snapshot,
    sort_entries,
    walk_tree,
)

__all__ = [
    "DEFAULT_EXCLUDES",
    "DiffResult",
    "DirEntry",
    "DirList",
    "diff",
    "file_sha1",
    "snapshot",
    "sort_entries",
    "walk_tree",
]
