"""Security helpers: AEAD primitives, secret cache and key manager for Stashbox.

This package provides:
- AES-256-GCM encryption of byte strings and chunked file streams
- a keyring-backed, time-bounded secret cache with a null fallback
- the key manager that mints, resolves and retires per-file secrets
"""

from .crypto import (
    encrypt,
    decrypt,
    encrypt_stream,
    decrypt_stream,
    generate_key,
    generate_nonce,
)
from .cache import (
    SecretCache,
    KeyringSecretCache,
    NullSecretCache,
    build_secret_cache,
    current_identity,
)
from .keys import KeyManager, Secret

__all__ = [
    "encrypt",
    "decrypt",
    "encrypt_stream",
    "decrypt_stream",
    "generate_key",
    "generate_nonce",
    "SecretCache",
    "KeyringSecretCache",
    "NullSecretCache",
    "build_secret_cache",
    "current_identity",
    "KeyManager",
    "Secret",
]
