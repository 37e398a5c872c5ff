"""
Stash orchestrator: moves files between plaintext and ciphertext form.

Layout for reference:
==============================
 - <root>/
      - <name>            AES-256-GCM ciphertext || tag, one per stashed file
      - contents          encrypted tar.gz of every file (archived mode only)
      - .stash/
          - secrets.db    durable secret store (sqlite)
          - staging/      temp files; same filesystem as <root>
==============================

Every multi-step operation is ordered so a crash leaves either the previous
state or one equivalent to completion:

> ciphertext is published (os.replace) before a source is removed
> a ciphertext is removed before its secret is retired
> archive builds and publishes ``contents`` before touching any original

An orphaned secret (secret without ciphertext) is the only possible leftover
and is retired when the stash is next opened.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Any

from . import modes
from .archiver import Archiver, TarGzArchiver
from .atomic import (
    atomic_write,
    discard,
    io_errors,
    open_for_read,
    remove_file,
    staged_dir,
)
from .config import CONTENTS_NAME, CONTROL_DIR_NAME, StashConfig
from .exceptions import (
    DuplicateSecretError,
    FileAlreadyExistsError,
    InvalidFileError,
    NotFoundError,
    SecretCacheError,
    SecretNotFoundError,
    StashError,
    StoreUnavailableError,
)
from .models import StashedFile, StashReport
from .modes import Operation, StashMode
from ..database.connection import DatabaseConnection
from ..database.models import SecretModel
from ..security.cache import SecretCache, build_secret_cache
from ..security.crypto import decrypt_stream, encrypt_stream
from ..security.keys import KeyManager

logger = logging.getLogger(__name__)

RESERVED_NAMES = frozenset({CONTENTS_NAME, CONTROL_DIR_NAME})


class Stash:
    """A stash directory, its secret store and its mode."""

    def __init__(
        self,
        config: StashConfig,
        archiver: Optional[Archiver] = None,
        cache: Optional[SecretCache] = None,
    ):
        self.config = config
        self.root = config.root
        self.archiver = archiver if archiver is not None else TarGzArchiver()

        fresh = not self.root.exists()
        with io_errors(self.root, "create stash directory"):
            self.root.mkdir(parents=True, exist_ok=True)
            config.control_dir.mkdir(mode=0o700, exist_ok=True)

        # the store opens before anything else is touched
        self.db = DatabaseConnection(config.db_path)
        try:
            self.db.initialize()
        except StoreUnavailableError:
            if fresh:
                discard(self.root)
            raise

        with io_errors(config.staging_dir, "create staging directory"):
            config.staging_dir.mkdir(mode=0o700, exist_ok=True)
        if cache is None:
            cache = build_secret_cache(config)
        self.keys = KeyManager(SecretModel(self.db), cache)
        try:
            cache.purge_expired()
        except SecretCacheError as e:
            logger.warning("Secret cache purge skipped: %s", e)

        self._clear_staging()
        self.mode = StashMode.ARCHIVED if config.contents_path.is_file() else StashMode.NORMAL
        self.recover()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        self.db.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def is_archived(self) -> bool:
        return self.mode is StashMode.ARCHIVED

    def _path(self, file_id: str) -> Path:
        # file ids are plain base names inside the stash root
        if (
            not file_id
            or file_id in (".", "..", CONTROL_DIR_NAME)
            or "/" in file_id
            or "\\" in file_id
        ):
            raise InvalidFileError(f"'{file_id}' is not a valid stash file name")
        return self.root / file_id

    def _ciphertexts(self) -> List[Path]:
        with io_errors(self.root, "list"):
            return sorted(p for p in self.root.iterdir() if p.is_file())

    def _clear_staging(self) -> None:
        staging = self.config.staging_dir
        with io_errors(staging, "list"):
            leftovers = list(staging.iterdir())
        for entry in leftovers:
            logger.debug("Removing stale staging entry '%s'", entry.name)
            discard(entry)

    def _retire_stale(self, file_id: str) -> None:
        # a secret without ciphertext is left by an interrupted add/unpack
        if self.keys.has(file_id) and not (self.root / file_id).exists():
            logger.warning("Retiring stale secret for '%s'", file_id)
            self.keys.retire(file_id)

    def _abandon(self, file_id: str) -> None:
        # undo a mint whose ciphertext never got published
        try:
            self.keys.retire(file_id)
        except StashError as e:
            logger.error("Could not retire secret for '%s' after a failed write: %s", file_id, e)

    def _encrypt_into_stash(self, src: Path, name: str) -> StashedFile:
        target = self.root / name
        self._retire_stale(name)
        secret = self.keys.mint(name)
        try:
            with atomic_write(target, self.config.staging_dir) as out:
                with open_for_read(src) as f:
                    with io_errors(src, "encrypt"):
                        encrypt_stream(f, out, secret.key, secret.nonce, self.config.chunk_size)
        except BaseException:
            self._abandon(name)
            raise
        return StashedFile.from_path(target)

    def _decrypt_to(self, file_id: str, out) -> int:
        secret = self.keys.resolve(file_id)
        with open_for_read(self.root / file_id) as f:
            with io_errors(self.root / file_id, "decrypt"):
                return decrypt_stream(f, out, secret.key, secret.nonce, self.config.chunk_size)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def add(self, src, copy: bool = False) -> StashedFile:
        """Encrypt ``src`` into the stash; remove the original unless ``copy``."""
        modes.check(self.mode, Operation.ADD)
        src = Path(src).expanduser()
        if not src.exists():
            raise NotFoundError(f"Source file not found at: {src}")
        if src.is_dir():
            raise InvalidFileError(f"'{src}' is a directory")
        name = src.name
        if name in RESERVED_NAMES:
            raise InvalidFileError(f"'{name}' is a reserved name and cannot be stashed")
        target = self._path(name)
        if target.exists():
            raise DuplicateSecretError(f"'{name}' is already in the stash")

        stashed = self._encrypt_into_stash(src, name)
        if not copy:
            remove_file(src, "remove source file")
        logger.info("%s '%s' (%d bytes)", "Copied" if copy else "Added", name, stashed.size)
        return stashed

    def copy(self, src) -> StashedFile:
        """Encrypt a copy of ``src`` into the stash, leaving the original."""
        return self.add(src, copy=True)

    def grab(self, file_id: str, copy: bool = False, dest_dir=None) -> Path:
        """Decrypt ``file_id`` into ``dest_dir`` (cwd); remove it from the stash unless ``copy``."""
        modes.check(self.mode, Operation.GRAB, file_id)
        source = self._path(file_id)
        if not source.is_file():
            raise NotFoundError(f"'{file_id}' not found in stash")
        destination = Path(dest_dir if dest_dir is not None else Path.cwd()) / file_id
        if destination.exists():
            raise FileAlreadyExistsError(f"'{destination}' already exists")

        # staged next to the destination so the final rename never crosses filesystems
        with atomic_write(destination, destination.parent) as out:
            self._decrypt_to(file_id, out)

        if not copy:
            remove_file(source, "remove ciphertext")
            self.keys.retire(file_id)
            self.mode = modes.next_mode(self.mode, Operation.GRAB, file_id, copy=False)
        logger.info("Grabbed '%s' into %s", file_id, destination.parent)
        return destination

    def delete(self, file_id: str) -> None:
        """Remove a ciphertext and retire its secret."""
        modes.check(self.mode, Operation.DELETE, file_id)
        target = self._path(file_id)
        if not target.is_file():
            raise NotFoundError(f"'{file_id}' not found in stash")

        remove_file(target, "delete")
        try:
            self.keys.retire(file_id)
        except SecretNotFoundError:
            logger.warning("'%s' had no secret on record", file_id)
        self.mode = modes.next_mode(self.mode, Operation.DELETE, file_id)
        logger.info("Deleted '%s'", file_id)

    def list(self) -> List[StashedFile]:
        """Stashed files sorted by name; only ``contents`` when archived."""
        modes.check(self.mode, Operation.LIST)
        paths = self._ciphertexts()
        if self.is_archived:
            paths = [p for p in paths if p.name == CONTENTS_NAME]
        return [StashedFile.from_path(p) for p in paths]

    def archive(self) -> StashedFile:
        """Replace every stashed file with one encrypted tarball, ``contents``."""
        modes.check(self.mode, Operation.ARCHIVE)
        files = self.list()
        if not files:
            raise NotFoundError("No files in stash to archive")

        work = staged_dir(self.config.staging_dir, "archive-")
        plain_dir = work / "plain"
        tarball = work / "contents.tar.gz"
        minted = False
        try:
            with io_errors(plain_dir, "create"):
                plain_dir.mkdir(mode=0o700)
            plaintexts = []
            for item in files:
                plain = plain_dir / item.name
                with io_errors(plain, "write"):
                    with open(plain, "wb") as out:
                        self._decrypt_to(item.name, out)
                plaintexts.append(plain)

            with io_errors(tarball, "write"):
                with open(tarball, "wb") as out:
                    self.archiver.pack(plaintexts, out)

            self._retire_stale(CONTENTS_NAME)
            secret = self.keys.mint(CONTENTS_NAME)
            minted = True
            with atomic_write(self.config.contents_path, self.config.staging_dir) as out:
                with open_for_read(tarball) as f:
                    with io_errors(self.config.contents_path, "encrypt"):
                        encrypt_stream(f, out, secret.key, secret.nonce, self.config.chunk_size)
        except BaseException:
            if minted:
                self._abandon(CONTENTS_NAME)
            raise
        finally:
            discard(work)

        # contents is published; the rest only removes what it already holds
        self.mode = modes.next_mode(self.mode, Operation.ARCHIVE)
        for item in files:
            remove_file(item.path, "remove archived file")
        self.keys.retire_all(exclude=[CONTENTS_NAME])
        logger.info("Archived %d files into '%s'", len(files), CONTENTS_NAME)
        return StashedFile.from_path(self.config.contents_path)

    def unpack(self) -> List[StashedFile]:
        """Restore every file from ``contents`` under fresh secrets."""
        modes.check(self.mode, Operation.UNPACK)
        contents = self.config.contents_path

        work = staged_dir(self.config.staging_dir, "unpack-")
        plain_dir = work / "plain"
        tarball = work / "contents.tar.gz"
        restored: List[StashedFile] = []
        try:
            with io_errors(tarball, "write"):
                with open(tarball, "wb") as out:
                    self._decrypt_to(CONTENTS_NAME, out)
            with io_errors(plain_dir, "create"):
                plain_dir.mkdir(mode=0o700)
            with open_for_read(tarball) as src:
                extracted = self.archiver.unpack(src, plain_dir)

            for plain in extracted:
                if plain.name in RESERVED_NAMES:
                    raise InvalidFileError(f"Archive holds reserved name '{plain.name}'")
                if (self.root / plain.name).exists():
                    raise InvalidFileError(f"Archive member '{plain.name}' is already in the stash")

            for plain in extracted:
                restored.append(self._encrypt_into_stash(plain, plain.name))
        except BaseException:
            for item in restored:
                self._withdraw(item)
            raise
        finally:
            discard(work)

        remove_file(contents, "remove archive")
        self.keys.retire(CONTENTS_NAME)
        self.mode = modes.next_mode(self.mode, Operation.UNPACK)
        logger.info("Unpacked %d files from '%s'", len(restored), CONTENTS_NAME)
        return restored

    def _withdraw(self, item: StashedFile) -> None:
        # roll back a file published by a failed unpack; contents still holds it
        try:
            remove_file(item.path, "remove")
            self.keys.retire(item.name)
        except StashError as e:
            logger.error("Could not withdraw '%s' after a failed unpack: %s", item.name, e)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def check(self, repair: bool = False) -> StashReport:
        """Compare live secrets with ciphertexts; optionally retire orphaned secrets."""
        secret_ids = set(self.keys.ids())
        names = {p.name for p in self._ciphertexts()}
        orphaned = secret_ids - names
        missing = names - secret_ids
        repaired = []
        if repair:
            for file_id in sorted(orphaned):
                try:
                    self.keys.retire(file_id)
                except SecretCacheError as e:
                    # harmless to keep; the next repair retries it
                    logger.warning("Left orphaned secret '%s' in place: %s", file_id, e)
                    continue
                repaired.append(file_id)
            orphaned -= set(repaired)
        return StashReport(orphaned, missing, repaired)

    def recover(self) -> StashReport:
        """Finish whatever an interrupted operation left behind."""
        if self.is_archived:
            # leftovers of an interrupted archive/unpack; contents holds them all
            leftovers = [
                p for p in self._ciphertexts()
                if p.name != CONTENTS_NAME and self.keys.has(p.name)
            ]
            for path in leftovers:
                logger.warning("Removing '%s' left behind by an interrupted archive", path.name)
                remove_file(path, "remove archived file")
        report = self.check(repair=True)
        if report.repaired:
            logger.warning("Retired %d orphaned secrets", len(report.repaired))
        return report

    def status(self) -> Dict[str, Any]:
        report = self.check()
        files = self.list()
        return {
            "root": str(self.root),
            "mode": self.mode.value,
            "files": len(files),
            "size": sum(f.size for f in files),
            "secrets": len(self.keys.ids()),
            "cache": self.keys.cache.describe(),
            "cache_available": self.keys.cache.available,
            "orphaned_secrets": report.orphaned_secrets,
            "missing_secrets": report.missing_secrets,
        }
