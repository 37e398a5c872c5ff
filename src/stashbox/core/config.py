"""Runtime configuration for a stash.

A ``StashConfig`` is passed explicitly into :class:`stashbox.core.stash.Stash`;
there is no process-wide default stash.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

CONTROL_DIR_NAME = ".stash"
DB_FILE_NAME = "secrets.db"
STAGING_DIR_NAME = "staging"
CONTENTS_NAME = "contents"

DEFAULT_ROOT = Path.home() / ".stash"
DEFAULT_CACHE_TTL = 300
DEFAULT_CHUNK_SIZE = 64 * 1024


def _env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class StashConfig:
    """Where the stash lives and how secrets are cached."""

    root: Path = DEFAULT_ROOT
    cache_enabled: bool = True
    cache_ttl: int = DEFAULT_CACHE_TTL
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self):
        self.root = Path(self.root).expanduser()
        if self.cache_ttl <= 0:
            raise ValueError("cache_ttl must be positive")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "StashConfig":
        """Build a config from ``STASHBOX_*`` variables; keyword overrides win."""
        env = os.environ if environ is None else environ
        values = {
            "root": Path(env.get("STASHBOX_ROOT") or DEFAULT_ROOT),
            "cache_enabled": not _env_flag(env.get("STASHBOX_NO_CACHE")),
            "cache_ttl": int(env.get("STASHBOX_CACHE_TTL", DEFAULT_CACHE_TTL)),
            "chunk_size": int(env.get("STASHBOX_CHUNK_SIZE", DEFAULT_CHUNK_SIZE)),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def control_dir(self) -> Path:
        return self.root / CONTROL_DIR_NAME

    @property
    def db_path(self) -> Path:
        return self.control_dir / DB_FILE_NAME

    @property
    def staging_dir(self) -> Path:
        # same filesystem as root so os.replace stays atomic
        return self.control_dir / STAGING_DIR_NAME

    @property
    def contents_path(self) -> Path:
        return self.root / CONTENTS_NAME
