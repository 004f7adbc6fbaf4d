import hashlib
import os
import stat

import pytest

from devpush.errors import BadPathError, BadRequestError, ChecksumMismatch
from devpush.upload import ensure_dir, remove_path, safe_target, write_file


def sha(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


@pytest.mark.parametrize("rel", ["", "/etc/passwd", "../x", "a/../../x", "a//b", "./a", "a\\..\\x"])
def test_safe_target_rejects_escapes(tmp_path, rel):
    with pytest.raises(BadPathError):
        safe_target(tmp_path, rel)


def test_safe_target_joins_components(tmp_path):
    assert safe_target(tmp_path, "a/b.txt") == tmp_path / "a" / "b.txt"


def test_write_file_creates_parents_and_is_executable(tmp_path):
    data = b"package main\n"
    target = write_file(tmp_path, "src/main.go", sha(data), data)
    assert target.read_bytes() == data
    assert os.stat(target).st_mode & stat.S_IXUSR
    assert [p.name for p in target.parent.iterdir()] == ["main.go"]


def test_write_file_overwrites(tmp_path):
    write_file(tmp_path, "a", sha(b"one"), b"one")
    write_file(tmp_path, "a", sha(b"two"), b"two")
    assert (tmp_path / "a").read_bytes() == b"two"


def test_write_file_checks_sum(tmp_path):
    with pytest.raises(ChecksumMismatch, match="Sum did not match for a.txt"):
        write_file(tmp_path, "a.txt", sha(b"other"), b"data")
    assert not (tmp_path / "a.txt").exists()


def test_write_file_requires_hash(tmp_path):
    with pytest.raises(BadRequestError, match="Missing hash"):
        write_file(tmp_path, "a.txt", "", b"data")


def test_remove_path_handles_files_dirs_and_missing(tmp_path):
    (tmp_path / "d" / "e").mkdir(parents=True)
    (tmp_path / "d" / "e" / "f").write_text("x")
    (tmp_path / "g").write_text("y")
    remove_path(tmp_path, "d")
    remove_path(tmp_path, "g")
    remove_path(tmp_path, "missing")
    assert list(tmp_path.iterdir()) == []


def test_ensure_dir(tmp_path):
    ensure_dir(tmp_path, "a/b")
    assert (tmp_path / "a" / "b").is_dir()
