"""
Archive collaborator: packs stashed plaintexts into one gzip-tar stream and back.

The stash only depends on the ``Archiver`` protocol, so tests can swap in an
in-memory fake. ``TarGzArchiver`` is the default and runs in-process.
"""

import logging
import tarfile
from pathlib import Path, PurePosixPath
from typing import BinaryIO, List, Protocol

from .atomic import io_errors
from .exceptions import InvalidFileError

logger = logging.getLogger(__name__)


class Archiver(Protocol):
    def pack(self, files: List[Path], out: BinaryIO) -> None:
        ...

    def unpack(self, src: BinaryIO, dest_dir: Path) -> List[Path]:
        ...


def _member_name(name: str) -> str:
    # only flat, relative names are allowed back into the stash
    path = PurePosixPath(name)
    if path.is_absolute() or len(path.parts) != 1 or path.name in ("", ".", ".."):
        raise InvalidFileError(f"Archive member '{name}' is not a plain file name")
    return path.name


class TarGzArchiver:
    """Default archiver built on :mod:`tarfile`."""

    def pack(self, files, out):
        with tarfile.open(fileobj=out, mode="w:gz") as tar:
            for path in files:
                path = Path(path)
                with io_errors(path, "archive"):
                    tar.add(str(path), arcname=path.name, recursive=False)

    def unpack(self, src, dest_dir):
        dest_dir = Path(dest_dir)
        extracted = []
        try:
            tar = tarfile.open(fileobj=src, mode="r:gz")
        except (tarfile.TarError, EOFError, OSError) as e:
            raise InvalidFileError(f"Archive is not a readable tar.gz stream: {e}") from e

        with tar:
            members = tar.getmembers()
            seen = set()
            for member in members:
                if not member.isfile():
                    raise InvalidFileError(f"Archive member '{member.name}' is not a regular file")
                name = _member_name(member.name)
                if name in seen:
                    raise InvalidFileError(f"Archive member '{name}' appears twice")
                seen.add(name)

            for member in members:
                target = dest_dir / _member_name(member.name)
                fileobj = tar.extractfile(member)
                with io_errors(target, "extract"):
                    with fileobj, open(target, "wb") as f:
                        while True:
                            chunk = fileobj.read(64 * 1024)
                            if not chunk:
                                break
                            f.write(chunk)
                extracted.append(target)
                logger.debug("Extracted '%s'", target.name)
        return extracted
