"""Client-side half of the upload pipeline.

A fixed pool of worker threads drains a bounded queue of relative paths.
The first failure is kept; items dequeued after it are acknowledged without
being sent, so the producer and the ``Queue.join`` barrier never hang.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
from collections.abc import Callable, Collection, Iterable, Iterator
from pathlib import Path

from devpush.config import DEFAULT_UPLOAD_WORKERS
from devpush.errors import TransferError
from devpush.tree.snapshot import DEFAULT_EXCLUDES, file_sha1, walk_tree


logger = logging.getLogger("devpush.upload")

# send(build_id, dest, sha1, local_path)
Sender = Callable[[str, str, str, Path], None]


class _Progress:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.error: TransferError | None = None
        self.cancelled = False
        self.sent = 0

    def fail(self, err: TransferError) -> None:
        with self._lock:
            if self.error is None:
                self.error = err

    def cancel(self) -> None:
        with self._lock:
            self.cancelled = True

    def done(self) -> None:
        with self._lock:
            self.sent += 1

    def stopped(self) -> bool:
        with self._lock:
            return self.cancelled or self.error is not None


def upload_all(
    build_id: str,
    files: Iterable[str],
    local_root: str | os.PathLike[str],
    send: Sender,
    workers: int = DEFAULT_UPLOAD_WORKERS,
) -> int:
    """Send every path in ``files`` (relative to ``local_root``).

    Returns the number of files sent. Raises the first :class:`TransferError`
    once all in-flight transfers have finished; nothing is retried.
    """
    if workers < 1:
        raise ValueError("workers must be at least 1")

    root = Path(local_root)
    work: queue.Queue[str | None] = queue.Queue(maxsize=workers)
    progress = _Progress()

    def worker() -> None:
        while True:
            dest = work.get()
            try:
                if dest is None:
                    return
                if progress.stopped():
                    continue
                try:
                    path = root / dest
                    send(build_id, dest, file_sha1(path), path)
                except TransferError as e:
                    progress.fail(e)
                except Exception as e:
                    err = TransferError(f"Could not send {dest}: {e}")
                    err.__cause__ = e
                    progress.fail(err)
                else:
                    progress.done()
            finally:
                work.task_done()

    threads = [
        threading.Thread(target=worker, name=f"devpush-upload-{i}", daemon=True)
        for i in range(workers)
    ]
    for t in threads:
        t.start()

    try:
        for dest in files:
            work.put(dest)
        work.join()
    except BaseException:
        progress.cancel()
        raise
    finally:
        for _ in threads:
            work.put(None)
        for t in threads:
            t.join()

    if progress.error is not None:
        raise progress.error
    logger.info("Sent %d files for build %s", progress.sent, build_id)
    return progress.sent


def iter_upload_paths(
    local_root: str | os.PathLike[str],
    need: Iterable[str],
    exclude: Collection[str] = DEFAULT_EXCLUDES,
) -> Iterator[str]:
    """Expand the server's needed paths into the files to send.

    A needed directory stands for its whole subtree. Symlinked directories
    are followed, matching the client snapshot.
    """
    root = Path(local_root)
    for rel in need:
        full = root / rel
        if not full.is_dir():
            full.stat()
            yield rel
            continue
        for dirpath, _, filenames in walk_tree(full, exclude, follow_links=True):
            for name in filenames:
                yield Path(os.path.relpath(os.path.join(dirpath, name), root)).as_posix()
