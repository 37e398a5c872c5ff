"""Unit tests for the secret cache variants."""

import json
from unittest.mock import patch

import pytest

from stashbox.core.config import StashConfig
from stashbox.core.exceptions import SecretCacheError
from stashbox.security import keystore
from stashbox.security.keystore import BackendAssessment
from stashbox.security.cache import (
    INDEX_ACCOUNT,
    KeyringSecretCache,
    NullSecretCache,
    build_secret_cache,
    cache_service_name,
)


class FakeKeyring:
    """Dict-backed stand-in for the keyring module."""

    def __init__(self):
        self.passwords = {}

    def set_password(self, service, account, secret):
        self.passwords[(service, account)] = secret

    def get_password(self, service, account):
        return self.passwords.get((service, account))

    def delete_password(self, service, account):
        del self.passwords[(service, account)]


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def fake_keyring():
    fake = FakeKeyring()
    with patch("stashbox.security.keystore.keyring", fake):
        yield fake


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def keyring_cache(fake_keyring, clock):
    return KeyringSecretCache("stashbox:test", ttl_seconds=60, clock=clock)


def test_set_get_clear(keyring_cache, fake_keyring):
    keyring_cache.set("notes.txt", b"\x00" * 44)
    assert keyring_cache.get("notes.txt") == b"\x00" * 44

    keyring_cache.clear("notes.txt")
    assert keyring_cache.get("notes.txt") is None
    assert fake_keyring.passwords == {}


def test_entries_are_scoped_by_service(fake_keyring, clock):
    first = KeyringSecretCache("stashbox:a", clock=clock)
    second = KeyringSecretCache("stashbox:b", clock=clock)
    first.set("f", b"secret")

    assert second.get("f") is None


def test_entry_expires_after_ttl(keyring_cache, clock, fake_keyring):
    keyring_cache.set("notes.txt", b"secret")
    clock.now += 61

    assert keyring_cache.get("notes.txt") is None
    # expired entry is removed from the keyring
    assert fake_keyring.passwords == {}


def test_stored_payload_has_expiry(keyring_cache, fake_keyring, clock):
    keyring_cache.set("notes.txt", b"secret")
    raw = keystore.load_key("stashbox:test", "notes.txt")
    payload = json.loads(raw.decode("utf-8"))

    assert payload["expires_at"] == clock.now + 60


def test_malformed_entry_is_discarded(keyring_cache, fake_keyring):
    keystore.save_key("stashbox:test", "notes.txt", b"not json")

    assert keyring_cache.get("notes.txt") is None
    assert fake_keyring.passwords == {}


def test_clear_missing_entry_is_noop(keyring_cache):
    keyring_cache.clear("never-set")


def test_backend_errors_become_secret_cache_error(keyring_cache, fake_keyring):
    with patch.object(fake_keyring, "set_password", side_effect=Exception("locked")):
        with pytest.raises(SecretCacheError):
            keyring_cache.set("f", b"s")

    with patch.object(fake_keyring, "get_password", side_effect=Exception("locked")):
        with pytest.raises(SecretCacheError):
            keyring_cache.get("f")
        with pytest.raises(SecretCacheError):
            keyring_cache.clear("f")


def test_null_cache_always_misses():
    cache = NullSecretCache()
    cache.set("f", b"secret")

    assert cache.get("f") is None
    assert cache.available is False
    cache.clear("f")


def test_service_name_depends_on_root_and_identity(tmp_path):
    a = cache_service_name(tmp_path / "a", "alice")
    b = cache_service_name(tmp_path / "b", "alice")
    c = cache_service_name(tmp_path / "a", "bob")

    assert len({a, b, c}) == 3
    assert a.startswith("stashbox:alice:")


def test_build_cache_disabled_by_config(tmp_path):
    cache = build_secret_cache(StashConfig(root=tmp_path, cache_enabled=False))

    assert isinstance(cache, NullSecretCache)
    assert "disabled" in cache.describe()


def test_build_cache_rejects_insecure_backend(tmp_path):
    with patch(
        "stashbox.security.cache.keystore.assess_keyring_backend",
        return_value=BackendAssessment(False, "insecure backend detected: PlaintextKeyring"),
    ):
        cache = build_secret_cache(StashConfig(root=tmp_path))

    assert isinstance(cache, NullSecretCache)


def test_build_cache_uses_keyring_when_secure(tmp_path):
    with patch(
        "stashbox.security.cache.keystore.assess_keyring_backend",
        return_value=BackendAssessment(True, "backend looks acceptable"),
    ):
        cache = build_secret_cache(StashConfig(root=tmp_path, cache_ttl=30), identity="alice")

    assert isinstance(cache, KeyringSecretCache)
    assert cache.ttl_seconds == 30
    assert cache.service == cache_service_name(tmp_path, "alice")


def test_purge_expired_erases_unread_entries(keyring_cache, fake_keyring, clock):
    keyring_cache.set("old.txt", b"old")
    clock.now += 30
    keyring_cache.set("new.txt", b"new")
    clock.now += 31

    assert keyring_cache.purge_expired() == 1

    assert ("stashbox:test", "old.txt") not in fake_keyring.passwords
    assert keyring_cache.get("new.txt") == b"new"


def test_purge_expired_empties_keyring_once_everything_lapses(keyring_cache, fake_keyring, clock):
    keyring_cache.set("a", b"1")
    keyring_cache.set("b", b"2")
    clock.now += 61

    assert keyring_cache.purge_expired() == 2
    assert fake_keyring.passwords == {}


def test_index_is_kept_under_reserved_account(keyring_cache, fake_keyring, clock):
    keyring_cache.set("notes.txt", b"secret")

    index = json.loads(keystore.load_key("stashbox:test", INDEX_ACCOUNT).decode("utf-8"))
    assert index == {"notes.txt": clock.now + 60}

    keyring_cache.clear("notes.txt")
    assert keystore.load_key("stashbox:test", INDEX_ACCOUNT) is None


def test_purge_tolerates_malformed_index(keyring_cache, fake_keyring):
    keystore.save_key("stashbox:test", INDEX_ACCOUNT, b"[not, an, index")

    assert keyring_cache.purge_expired() == 0


def test_purge_backend_errors_become_secret_cache_error(keyring_cache, fake_keyring):
    with patch.object(fake_keyring, "get_password", side_effect=Exception("locked")):
        with pytest.raises(SecretCacheError):
            keyring_cache.purge_expired()


def test_null_cache_purge_is_noop():
    assert NullSecretCache().purge_expired() == 0
