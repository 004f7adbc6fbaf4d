"""Server-side half of the upload pipeline: writes into the working tree.

Every path arriving from a client goes through :func:`safe_target`, so
nothing here touches anything outside the root.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import uuid
from pathlib import Path

from devpush.errors import BadPathError, BadRequestError, ChecksumMismatch


logger = logging.getLogger("devpush.upload.receiver")


def safe_target(root: Path, rel: str) -> Path:
    if not rel:
        raise BadPathError("Missing destination filename.")
    clean = rel.replace("\\", "/")
    parts = clean.split("/")
    if clean.startswith("/") or any(p in ("", ".", "..") for p in parts):
        raise BadPathError(f"Unsafe path: {rel!r}")
    return root.joinpath(*parts)


def write_file(root: Path, dest: str, sha1: str, data: bytes) -> Path:
    """Verify ``data`` against ``sha1`` and write it to ``root/dest``.

    The content lands in a uniquely named temp file next to the target and is
    renamed into place, so readers never see a partial file and writers to
    different paths never contend.
    """
    target = safe_target(root, dest)
    if not sha1:
        raise BadRequestError("Missing hash.")
    if hashlib.sha1(data).hexdigest() != sha1.lower():
        raise ChecksumMismatch(f"Sum did not match for {dest}.")

    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        tmp.write_bytes(data)
        os.chmod(tmp, 0o755)
        os.replace(tmp, target)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
    logger.info("Wrote %s (%d bytes)", dest, len(data))
    return target


def remove_path(root: Path, rel: str) -> None:
    target = safe_target(root, rel)
    if target.is_dir() and not target.is_symlink():
        shutil.rmtree(target)
    else:
        target.unlink(missing_ok=True)


def ensure_dir(root: Path, rel: str) -> None:
    safe_target(root, rel).mkdir(parents=True, exist_ok=True)
