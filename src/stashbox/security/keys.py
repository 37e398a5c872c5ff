"""Key manager: one facade over the durable secret store and the volatile cache.

Write ordering keeps the two tiers from diverging in the unsafe direction:

- mint:   store first, then cache (cache failure is logged, not fatal)
- retire: cache first, then store (cache failure aborts before the store)

so a crash can leave a store record with no cache entry, never the reverse.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .cache import NullSecretCache, SecretCache
from .crypto import KEY_SIZE, NONCE_SIZE, generate_key, generate_nonce
from ..core.exceptions import SecretCacheError, SecretNotFoundError, StoreUnavailableError
from ..database.models import SecretModel

logger = logging.getLogger(__name__)

SECRET_SIZE = KEY_SIZE + NONCE_SIZE


@dataclass(frozen=True)
class Secret:
    """A (key, nonce) pair bound to exactly one encryption."""

    key: bytes
    nonce: bytes

    @classmethod
    def generate(cls) -> "Secret":
        return cls(key=generate_key(), nonce=generate_nonce())

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Secret":
        if len(raw) != SECRET_SIZE:
            raise ValueError(f"serialized secret must be {SECRET_SIZE} bytes")
        return cls(key=bytes(raw[:KEY_SIZE]), nonce=bytes(raw[KEY_SIZE:]))

    def to_bytes(self) -> bytes:
        return self.key + self.nonce

    def __repr__(self):
        return "Secret(<redacted>)"


class KeyManager:
    """Generate, resolve and retire per-file secrets."""

    def __init__(self, store: SecretModel, cache: Optional[SecretCache] = None):
        self.store = store
        self.cache = cache if cache is not None else NullSecretCache()

    def mint(self, file_id: str) -> Secret:
        """Create and persist a fresh secret; DuplicateSecretError if one is live."""
        secret = Secret.generate()
        self.store.create(file_id, secret.to_bytes())
        try:
            self.cache.set(file_id, secret.to_bytes())
        except SecretCacheError as e:
            logger.warning("Secret cache write skipped: %s", e)
        logger.debug("Minted secret for '%s'", file_id)
        return secret

    def resolve(self, file_id: str) -> Secret:
        """Return the secret for ``file_id``: cache first, store on a miss."""
        cached = None
        try:
            cached = self.cache.get(file_id)
        except SecretCacheError as e:
            logger.warning("Secret cache read skipped: %s", e)

        if cached is not None:
            try:
                return Secret.from_bytes(cached)
            except ValueError:
                logger.warning("Cached secret for '%s' is malformed; using the store", file_id)
                try:
                    self.cache.clear(file_id)
                except SecretCacheError as e:
                    logger.warning("Secret cache clear skipped: %s", e)

        raw = self.store.get(file_id)
        if raw is None:
            raise SecretNotFoundError(f"No secret found for '{file_id}'.")
        try:
            secret = Secret.from_bytes(raw)
        except ValueError:
            raise StoreUnavailableError(f"Secret store record for '{file_id}' is corrupt") from None
        try:
            self.cache.set(file_id, raw)
        except SecretCacheError as e:
            logger.warning("Secret cache refill skipped: %s", e)
        return secret

    def retire(self, file_id: str) -> None:
        """Remove the secret from cache then store; SecretNotFoundError if absent."""
        self.cache.clear(file_id)
        if not self.store.delete(file_id):
            raise SecretNotFoundError(f"No secret found for '{file_id}'.")
        logger.debug("Retired secret for '%s'", file_id)

    def retire_all(self, exclude: Iterable[str] = ()) -> List[str]:
        """Retire every secret except ``exclude``; return the retired ids."""
        keep = set(exclude)
        targets = [file_id for file_id in self.store.list_ids() if file_id not in keep]
        for file_id in targets:
            self.cache.clear(file_id)
        self.store.delete_many(targets)
        if targets:
            logger.debug("Retired %d secrets", len(targets))
        return targets

    def has(self, file_id: str) -> bool:
        return self.store.exists(file_id)

    def ids(self) -> List[str]:
        return self.store.list_ids()
