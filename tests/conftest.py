"""Shared fixtures for Stashbox tests."""

from pathlib import Path

import pytest

from stashbox.core.config import StashConfig
from stashbox.core.exceptions import SecretCacheError
from stashbox.core.stash import Stash
from stashbox.security.cache import SecretCache


class InMemorySecretCache(SecretCache):
    """Cache double that records entries in a dict and can be told to fail."""

    available = True

    def __init__(self):
        self.entries = {}
        self.fail_set = False
        self.fail_get = False
        self.fail_clear = False
        self.purges = 0

    def set(self, key_id, secret):
        if self.fail_set:
            raise SecretCacheError("set refused")
        self.entries[key_id] = bytes(secret)

    def get(self, key_id):
        if self.fail_get:
            raise SecretCacheError("get refused")
        return self.entries.get(key_id)

    def clear(self, key_id):
        if self.fail_clear:
            raise SecretCacheError("clear refused")
        self.entries.pop(key_id, None)

    def purge_expired(self):
        if self.fail_clear:
            raise SecretCacheError("purge refused")
        self.purges += 1
        return 0


@pytest.fixture
def cache():
    return InMemorySecretCache()


@pytest.fixture
def config(tmp_path: Path) -> StashConfig:
    """Config rooted in tmp_path with a small chunk size to exercise streaming."""
    return StashConfig(root=tmp_path / "stash", chunk_size=1024)


@pytest.fixture
def stash(config, cache):
    """Return an open Stash with an in-memory secret cache."""
    s = Stash(config, cache=cache)
    yield s
    s.close()


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """Directory holding plaintext sources and grab destinations."""
    path = tmp_path / "work"
    path.mkdir()
    return path
