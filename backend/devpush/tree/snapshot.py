from __future__ import annotations

import hashlib
import os
from collections.abc import Collection, Iterable, Iterator
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from devpush.errors import SnapshotError


DEFAULT_EXCLUDES: frozenset[str] = frozenset({".git", ".hg", ".svn", "__pycache__"})

_CHUNK_SIZE = 1024 * 1024


class DirEntry(BaseModel):
    """One path in a directory snapshot.

    Attributes:
        path: Slash-separated path relative to the snapshot root.
        is_dir: True for directories.
        sha1: Hex SHA-1 of the file content; empty for directories.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    is_dir: bool = False
    sha1: str = ""

    def in_dir(self, other: "DirEntry") -> bool:
        """True if ``other`` is a directory strictly above this entry."""
        return other.is_dir and self.path.startswith(other.path + "/")


DirList = list[DirEntry]


def sort_key(entry: DirEntry) -> tuple[str, ...]:
    # Component-wise so a directory's subtree stays contiguous ("a", "a/b", "a-c").
    return tuple(entry.path.split("/"))


def sort_entries(entries: Iterable[DirEntry]) -> DirList:
    return sorted(entries, key=sort_key)


def file_sha1(path: str | os.PathLike[str]) -> str:
    h = hashlib.sha1()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def _raise(err: OSError) -> None:
    raise err


def walk_tree(
    top: str | os.PathLike[str],
    exclude: Collection[str] = DEFAULT_EXCLUDES,
    follow_links: bool = False,
) -> Iterator[tuple[str, list[str], list[str]]]:
    """``os.walk`` with excluded names pruned and walk errors raised.

    With ``follow_links`` a symlinked directory that resolves to one of its
    own ancestors raises :class:`SnapshotError` instead of recursing forever.
    """
    # Real paths of each walked directory and its ancestors.
    chains: dict[str, frozenset[str]] = {}
    for dirpath, dirnames, filenames in os.walk(
        top, onerror=_raise, followlinks=follow_links
    ):
        dirnames[:] = [d for d in dirnames if d not in exclude]
        filenames = [f for f in filenames if f not in exclude]
        if follow_links:
            chain = chains.pop(dirpath, None) or frozenset({os.path.realpath(dirpath)})
            for name in dirnames:
                full = os.path.join(dirpath, name)
                real = os.path.realpath(full)
                if real in chain:
                    raise SnapshotError(f"Symlink loop at {full}")
                chains[full] = chain | {real}
        yield dirpath, dirnames, filenames


def snapshot(
    root: str | os.PathLike[str],
    exclude: Collection[str] = DEFAULT_EXCLUDES,
    follow_links: bool = False,
) -> DirList:
    """Walk ``root`` and describe every path beneath it.

    Directories and files whose name is in ``exclude`` are skipped together
    with their subtrees. Symlinked directories are walked like real ones when
    ``follow_links`` is set, otherwise recorded but not descended.
    The result is in walk order; use :func:`sort_entries` for canonical order.
    """
    root_path = Path(root)
    if not root_path.is_dir():
        raise SnapshotError(f"Not a directory: {root_path}")

    entries: DirList = []
    for dirpath, dirnames, filenames in walk_tree(root_path, exclude, follow_links):
        for name in dirnames:
            entries.append(
                DirEntry(path=_relative(root_path, dirpath, name), is_dir=True)
            )
        for name in filenames:
            full = os.path.join(dirpath, name)
            entries.append(
                DirEntry(path=_relative(root_path, dirpath, name), sha1=file_sha1(full))
            )
    return entries


def _relative(root: Path, dirpath: str, name: str) -> str:
    full = os.path.join(dirpath, name)
    rel = os.path.relpath(full, root)
    if os.path.isabs(rel) or rel == os.pardir or rel.startswith(os.pardir + os.sep):
        raise SnapshotError(f"Wanted {full} to be in dir {root}")
    return Path(rel).as_posix()
