"""Binary values in the OS credential store, via `keyring`.

Values are base64 text under a (service, account) pair. Backend errors
propagate unchanged; :mod:`stashbox.security.cache` decides what a failure
means. `keyring` is optional at import time so the stash still works (uncached)
on hosts without it.
"""
import base64
import binascii
from typing import NamedTuple, Optional

try:
    import keyring
except ImportError:
    keyring = None

# backend class-name fragments
_INSECURE_MARKERS = ("Plaintext", "Uncrypted", "Simple", "File", "Null")
_TRUSTED_MARKERS = ("Win", "Keychain", "SecretService", "KWallet")


class BackendAssessment(NamedTuple):
    secure: bool
    message: str
    backend: Optional[str] = None


def _require_keyring():
    if keyring is None:
        raise RuntimeError("keyring package is not available; caching secrets needs keyring")


def _encode(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _decode(text: str) -> Optional[bytes]:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        return None


def assess_keyring_backend() -> BackendAssessment:
    """Judge whether the active keyring backend may hold secrets."""
    if keyring is None:
        return BackendAssessment(False, "keyring package is not installed")

    try:
        backend = keyring.get_keyring()
    except Exception as e:
        return BackendAssessment(False, f"failed to get keyring backend: {e}")

    name = type(backend).__name__
    priority = getattr(backend, "priority", None)
    if any(marker in name for marker in _INSECURE_MARKERS):
        return BackendAssessment(False, f"insecure backend detected: {name}", name)
    if priority is not None and priority <= 0:
        return BackendAssessment(
            False, f"no suitable secure keyring backend available ({name}, priority={priority})", name
        )
    if any(marker in name for marker in _TRUSTED_MARKERS):
        return BackendAssessment(True, f"backend looks acceptable: {name}", name)
    return BackendAssessment(True, f"unknown backend '{name}', treat with caution", name)


def save_key(service: str, account: str, value: bytes) -> None:
    _require_keyring()
    keyring.set_password(service, account, _encode(value))


def load_key(service: str, account: str) -> Optional[bytes]:
    """Stored bytes for (service, account); None if absent or not valid base64."""
    _require_keyring()
    text = keyring.get_password(service, account)
    return None if text is None else _decode(text)


def delete_key(service: str, account: str) -> bool:
    """Erase (service, account); False if there was nothing to erase."""
    _require_keyring()
    if keyring.get_password(service, account) is None:
        return False
    keyring.delete_password(service, account)
    return True
