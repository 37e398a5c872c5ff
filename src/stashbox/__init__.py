"""Stashbox: a local, encrypted file stash."""

from .core.config import StashConfig
from .core.stash import Stash

__all__ = ["Stash", "StashConfig"]
