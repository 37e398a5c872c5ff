"""
Stash mode state machine.

    NORMAL --archive--> ARCHIVED
    ARCHIVED --unpack--> NORMAL
    ARCHIVED --delete contents--> NORMAL
    ARCHIVED --grab contents (move)--> NORMAL

``check`` runs before an operation touches anything, so an illegal request
fails without side effects.
"""

from enum import Enum
from typing import Optional

from .config import CONTENTS_NAME
from .exceptions import ArchivedModeError, NotArchivedError


class StashMode(Enum):
    NORMAL = "normal"
    ARCHIVED = "archived"


class Operation(Enum):
    ADD = "add"
    GRAB = "grab"
    DELETE = "delete"
    LIST = "list"
    ARCHIVE = "archive"
    UNPACK = "unpack"


def check(mode: StashMode, operation: Operation, file_id: Optional[str] = None) -> None:
    """Raise ArchivedModeError/NotArchivedError if ``operation`` is illegal in ``mode``."""
    if operation is Operation.LIST:
        return

    if mode is StashMode.NORMAL:
        if operation is Operation.UNPACK:
            raise NotArchivedError("No archive exists. Nothing to unpack")
        return

    if operation is Operation.ADD:
        raise ArchivedModeError(
            "Stash is in archive mode. Call `unpack` before adding more files"
        )
    if operation is Operation.ARCHIVE:
        raise ArchivedModeError("Archive already exists")
    if operation in (Operation.GRAB, Operation.DELETE) and file_id != CONTENTS_NAME:
        raise ArchivedModeError(
            f"Stash is in archive mode. Use `unpack` before using '{file_id}'"
        )


def next_mode(
    mode: StashMode,
    operation: Operation,
    file_id: Optional[str] = None,
    copy: bool = False,
) -> StashMode:
    """Mode after ``operation`` succeeded in ``mode``."""
    if operation is Operation.ARCHIVE:
        return StashMode.ARCHIVED
    if operation is Operation.UNPACK:
        return StashMode.NORMAL
    if mode is StashMode.ARCHIVED and file_id == CONTENTS_NAME:
        if operation is Operation.DELETE:
            return StashMode.NORMAL
        if operation is Operation.GRAB and not copy:
            return StashMode.NORMAL
    return mode
