"""Volatile secret cache in front of the durable secret store.

The cache is an optional capability with two variants:

- ``KeyringSecretCache``: entries live in the OS keyring, scoped to the
  invoking OS identity and the stash root, and expire after a TTL.
- ``NullSecretCache``: used when no trustworthy keyring backend exists or
  caching is disabled; every lookup misses.

Keyring backends (Secret Service, KWallet, Keychain, WinVault) keep entries
in an encrypted store on disk, not in kernel session memory. Exposure is
bounded by the TTL instead: expired entries are erased when read and by
``purge_expired()``, which the stash runs every time it is opened. Set
``STASHBOX_NO_CACHE`` to keep secrets out of the keyring entirely.

The cache is never the only holder of a secret; the store stays authoritative.
"""
from __future__ import annotations

import base64
import binascii
import getpass
import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Callable, Dict, Optional

from . import keystore
from ..core.exceptions import SecretCacheError

logger = logging.getLogger(__name__)


def current_identity() -> str:
    """Return the OS identity whose keyring scopes the cache."""
    return getpass.getuser()


def cache_service_name(root: Path | str, identity: str) -> str:
    digest = hashlib.sha256(str(Path(root).expanduser().resolve()).encode("utf-8")).hexdigest()
    return f"stashbox:{identity}:{digest[:16]}"


class SecretCache:
    """Interface: set/get/clear serialized secrets by key id."""

    available = False

    def set(self, key_id: str, secret: bytes) -> None:
        raise NotImplementedError

    def get(self, key_id: str) -> Optional[bytes]:
        raise NotImplementedError

    def clear(self, key_id: str) -> None:
        raise NotImplementedError

    def purge_expired(self) -> int:
        """Erase entries whose TTL has passed; return how many were erased."""
        return 0

    def describe(self) -> str:
        return self.__class__.__name__


class NullSecretCache(SecretCache):
    """Cache variant for platforms or sessions without a usable keyring."""

    def __init__(self, reason: str = "disabled"):
        self.reason = reason

    def set(self, key_id, secret):
        return None

    def get(self, key_id):
        return None

    def clear(self, key_id):
        return None

    def describe(self):
        return f"unavailable ({self.reason})"


# account holding the {key_id: expires_at} index; ".stash" is never a file id
INDEX_ACCOUNT = ".stash"


class KeyringSecretCache(SecretCache):
    """Time-bounded cache entries stored through :mod:`stashbox.security.keystore`.

    Every live entry is also listed in an index under :data:`INDEX_ACCOUNT`,
    because keyring cannot enumerate a service. :meth:`purge_expired` uses it
    to erase entries nobody read back before their TTL ran out.
    """

    available = True

    def __init__(self, service: str, ttl_seconds: int = 300, clock: Callable[[], float] = time.time):
        self.service = service
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _load_index(self) -> Dict[str, float]:
        raw = keystore.load_key(self.service, INDEX_ACCOUNT)
        if raw is None:
            return {}
        try:
            index = json.loads(raw.decode("utf-8"))
            return {str(k): float(v) for k, v in index.items()}
        except (ValueError, AttributeError, TypeError):
            logger.warning("Discarding malformed cache index for %s", self.service)
            return {}

    def _save_index(self, index: Dict[str, float]) -> None:
        if index:
            keystore.save_key(self.service, INDEX_ACCOUNT, json.dumps(index).encode("utf-8"))
        else:
            keystore.delete_key(self.service, INDEX_ACCOUNT)

    def set(self, key_id, secret):
        expires_at = self._clock() + float(self.ttl_seconds)
        payload = {
            "secret": base64.b64encode(secret).decode("ascii"),
            "expires_at": expires_at,
        }
        try:
            keystore.save_key(self.service, key_id, json.dumps(payload).encode("utf-8"))
            index = self._load_index()
            index[key_id] = expires_at
            self._save_index(index)
        except Exception as e:
            raise SecretCacheError(f"Failed to cache secret for '{key_id}': {e}") from e

    def get(self, key_id):
        try:
            raw = keystore.load_key(self.service, key_id)
        except Exception as e:
            raise SecretCacheError(f"Failed to read cached secret for '{key_id}': {e}") from e
        if raw is None:
            return None

        try:
            payload = json.loads(raw.decode("utf-8"))
            expires_at = float(payload["expires_at"])
            secret = base64.b64decode(payload["secret"], validate=True)
        except (ValueError, KeyError, TypeError, binascii.Error):
            logger.warning("Discarding malformed cache entry for '%s'", key_id)
            self.clear(key_id)
            return None

        if self._clock() > expires_at:
            # auto-expire
            self.clear(key_id)
            return None
        return secret

    def clear(self, key_id):
        try:
            keystore.delete_key(self.service, key_id)
            index = self._load_index()
            if index.pop(key_id, None) is not None:
                self._save_index(index)
        except Exception as e:
            raise SecretCacheError(f"Failed to clear cached secret for '{key_id}': {e}") from e

    def purge_expired(self):
        try:
            index = self._load_index()
        except Exception as e:
            raise SecretCacheError(f"Failed to read cache index: {e}") from e
        now = self._clock()
        expired = sorted(key_id for key_id, expires_at in index.items() if now > expires_at)
        for key_id in expired:
            self.clear(key_id)
        if expired:
            logger.debug("Purged %d expired cache entries", len(expired))
        return len(expired)

    def describe(self):
        return f"keyring ({self.service}, ttl={self.ttl_seconds}s)"


def build_secret_cache(config, identity: Optional[str] = None) -> SecretCache:
    """Pick the cache variant for ``config``: keyring when enabled and trustworthy."""
    if not config.cache_enabled:
        return NullSecretCache("disabled by configuration")

    assessment = keystore.assess_keyring_backend()
    if not assessment.secure:
        logger.info("Secret cache unavailable: %s", assessment.message)
        return NullSecretCache(assessment.message)

    service = cache_service_name(config.root, identity or current_identity())
    logger.debug("Secret cache backed by keyring: %s", assessment.message)
    return KeyringSecretCache(service, ttl_seconds=config.cache_ttl)
