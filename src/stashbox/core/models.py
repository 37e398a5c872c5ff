"""
Base data models for stashed files and stash health reports
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..security.crypto import TAG_SIZE


class StashedFile:
    __slots__ = (
        'name',
        'path',
        'size',
        'modified_at',
    )

    def __init__(self, name, path, size=0, modified_at=None):
        """
            Initialize a stashed file record
        """
        self.name = name
        self.path = Path(path)
        self.size = size
        self.modified_at = modified_at if modified_at is not None else datetime.now()

    @classmethod
    def from_path(cls, path):
        """
            Build a record from a ciphertext on disk; size is the plaintext size
        """
        path = Path(path)
        st = path.stat()
        return cls(
            name=path.name,
            path=path,
            size=max(0, st.st_size - TAG_SIZE),
            modified_at=datetime.fromtimestamp(st.st_mtime),
        )

    def to_dict(self):
        """
            Convert to dict
        """
        return {
            'name': self.name,
            'path': str(self.path),
            'size': self.size,
            'modified_at': self.modified_at.isoformat(),
        }

    def __repr__(self):
        return f"StashedFile(name={self.name!r}, size={self.size!r})"

    def __eq__(self, other):
        if not isinstance(other, StashedFile):
            return NotImplemented
        return self.name == other.name

    def __hash__(self):
        return hash(self.name)


class StashReport:
    """Result of comparing live secrets with ciphertexts on disk."""

    __slots__ = ('orphaned_secrets', 'missing_secrets', 'repaired')

    def __init__(
        self,
        orphaned_secrets: Optional[List[str]] = None,
        missing_secrets: Optional[List[str]] = None,
        repaired: Optional[List[str]] = None,
    ):
        # secrets with no ciphertext are safe to retire
        self.orphaned_secrets = sorted(orphaned_secrets or [])
        # ciphertexts with no secret cannot be decrypted
        self.missing_secrets = sorted(missing_secrets or [])
        self.repaired = sorted(repaired or [])

    @property
    def consistent(self) -> bool:
        return not self.orphaned_secrets and not self.missing_secrets

    def to_dict(self):
        return {
            'consistent': self.consistent,
            'orphaned_secrets': list(self.orphaned_secrets),
            'missing_secrets': list(self.missing_secrets),
            'repaired': list(self.repaired),
        }

    def __repr__(self):
        return (
            f"StashReport(orphaned_secrets={self.orphaned_secrets!r}, "
            f"missing_secrets={self.missing_secrets!r})"
        )
