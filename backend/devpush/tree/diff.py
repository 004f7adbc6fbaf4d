from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, Field

from devpush.tree.snapshot import DirEntry, DirList, sort_entries, sort_key


class DiffResult(BaseModel):
    """Paths to add and remove to turn one tree into another.

    Neither list holds an entry nested under a directory already in that
    list. A path appears in both only when it changes between file and
    directory.
    """

    add: DirList = Field(default_factory=list)
    remove: DirList = Field(default_factory=list)


def _append(entries: DirList, entry: DirEntry) -> None:
    if entries and entry.in_dir(entries[-1]):
        return
    entries.append(entry)


def diff(have: Iterable[DirEntry], want: Iterable[DirEntry]) -> DiffResult:
    """Compare the tree we have against the tree we want.

    A single merge pass over both sorted lists.
    """
    ours = sort_entries(have)
    theirs = sort_entries(want)
    add: DirList = []
    remove: DirList = []

    i = j = 0
    while i < len(ours) and j < len(theirs):
        o, w = ours[i], theirs[j]
        o_key, w_key = sort_key(o), sort_key(w)
        if o_key == w_key:
            i += 1
            j += 1
            if o.is_dir != w.is_dir:
                _append(remove, o)
                _append(add, w)
            elif not w.is_dir and o.sha1 != w.sha1:
                # The put overwrites the file, no remove needed.
                _append(add, w)
        elif o_key > w_key:
            _append(add, w)
            j += 1
        else:
            _append(remove, o)
            i += 1

    for w in theirs[j:]:
        _append(add, w)
    for o in ours[i:]:
        _append(remove, o)

    return DiffResult(add=add, remove=remove)
