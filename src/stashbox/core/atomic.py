"""
Atomic file helpers: stage in a temp file, fsync, then os.replace into place.

A target path either keeps its previous state or holds the complete new
bytes; a half-written file only ever exists under the staging directory.
"""

import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path

from .exceptions import StashIOError

logger = logging.getLogger(__name__)


@contextmanager
def io_errors(path, operation):
    """Translate OSError raised in the block into StashIOError(path, operation)."""
    try:
        yield
    except OSError as e:
        raise StashIOError(path, operation, e.strerror or str(e)) from e


def fsync_dir(directory):
    # persist a rename; not supported on every platform
    try:
        fd = os.open(str(directory), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def staged_path(staging_dir, suffix=""):
    """Create an empty temp file under ``staging_dir`` and return its path."""
    staging_dir = Path(staging_dir)
    with io_errors(staging_dir, "create staging file in"):
        staging_dir.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(dir=str(staging_dir), prefix=".stashbox-", suffix=suffix)
        os.close(fd)
    return Path(name)


def staged_dir(staging_dir, prefix):
    """Create a private work directory under ``staging_dir``."""
    staging_dir = Path(staging_dir)
    with io_errors(staging_dir, "create staging directory in"):
        staging_dir.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(dir=str(staging_dir), prefix=prefix))


def open_for_read(path):
    with io_errors(path, "read"):
        return open(path, "rb")


def discard(path):
    """Remove a staging file or directory if it exists."""
    path = Path(path)
    if path.is_dir():
        shutil.rmtree(path, ignore_errors=True)
        return
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove staging file '%s': %s", path, e)


def publish(staged, target):
    """Atomically move a complete staging file onto ``target``."""
    target = Path(target)
    with io_errors(target, "publish"):
        os.replace(str(staged), str(target))
    fsync_dir(target.parent)


@contextmanager
def atomic_write(target, staging_dir):
    """Yield a binary file that replaces ``target`` only if the block succeeds.

    Only opening and syncing the staging file are translated to StashIOError
    here; errors raised by the block propagate as they are.
    """
    tmp = staged_path(staging_dir, suffix=".part")
    try:
        with io_errors(tmp, "open staging file"):
            f = open(tmp, "wb")
        with f:
            yield f
            with io_errors(tmp, "sync staging file"):
                f.flush()
                os.fsync(f.fileno())
        publish(tmp, target)
    except BaseException:
        discard(tmp)
        raise


def remove_file(path, operation="remove"):
    """Unlink ``path``; OSError becomes StashIOError."""
    with io_errors(path, operation):
        Path(path).unlink()
    fsync_dir(Path(path).parent)
