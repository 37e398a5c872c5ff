"""Unit tests for the atomic file helpers."""

from pathlib import Path

import pytest

from stashbox.core.atomic import (
    atomic_write,
    discard,
    io_errors,
    remove_file,
    staged_dir,
    staged_path,
)
from stashbox.core.exceptions import StashIOError


@pytest.fixture
def staging(tmp_path: Path) -> Path:
    return tmp_path / "staging"


def test_atomic_write_publishes_on_success(tmp_path, staging):
    target = tmp_path / "out.bin"

    with atomic_write(target, staging) as f:
        f.write(b"complete")

    assert target.read_bytes() == b"complete"
    assert list(staging.iterdir()) == []


def test_atomic_write_leaves_target_untouched_on_error(tmp_path, staging):
    target = tmp_path / "out.bin"
    target.write_bytes(b"previous")

    with pytest.raises(RuntimeError):
        with atomic_write(target, staging) as f:
            f.write(b"half")
            raise RuntimeError("boom")

    assert target.read_bytes() == b"previous"
    assert list(staging.iterdir()) == []


def test_atomic_write_does_not_create_target_on_error(tmp_path, staging):
    target = tmp_path / "new.bin"

    with pytest.raises(ValueError):
        with atomic_write(target, staging):
            raise ValueError("bad input")

    assert not target.exists()


def test_io_errors_wraps_oserror(tmp_path):
    missing = tmp_path / "missing.txt"

    with pytest.raises(StashIOError) as excinfo:
        with io_errors(missing, "read"):
            missing.read_bytes()

    assert excinfo.value.path == str(missing)
    assert excinfo.value.operation == "read"
    assert "read" in str(excinfo.value)


def test_io_errors_passes_other_exceptions():
    with pytest.raises(KeyError):
        with io_errors("x", "read"):
            raise KeyError("k")


def test_remove_file(tmp_path):
    path = tmp_path / "f"
    path.write_bytes(b"x")

    remove_file(path)
    assert not path.exists()

    with pytest.raises(StashIOError):
        remove_file(path, "delete")


def test_staged_path_and_dir_are_private(staging):
    path = staged_path(staging, suffix=".part")
    work = staged_dir(staging, "archive-")

    assert path.exists() and path.parent == staging
    assert work.is_dir() and work.name.startswith("archive-")
    assert (path.stat().st_mode & 0o077) == 0
    assert (work.stat().st_mode & 0o077) == 0


def test_discard_handles_files_dirs_and_missing(staging):
    path = staged_path(staging)
    work = staged_dir(staging, "w-")
    (work / "inner").write_bytes(b"plaintext")

    discard(path)
    discard(work)
    discard(staging / "never-existed")

    assert list(staging.iterdir()) == []


def test_atomic_write_leaves_block_oserrors_to_the_caller(tmp_path, staging):
    target = tmp_path / "out.bin"

    with pytest.raises(OSError) as excinfo:
        with atomic_write(target, staging):
            raise OSError(5, "Input/output error")

    assert not isinstance(excinfo.value, StashIOError)
    assert not target.exists()
    assert list(staging.iterdir()) == []
