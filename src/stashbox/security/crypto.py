"""AES-256-GCM encryption of byte strings and file streams.

Ciphertext layout (no header):
- N bytes: GCM ciphertext, same length as the plaintext
- 16 bytes: authentication tag

The one-shot functions use ``AESGCM``; the stream functions feed bounded
chunks through a single GCM transcript with ``Cipher``/``modes.GCM``, so both
paths produce identical bytes for the same (key, nonce, plaintext) and the
nonce is consumed exactly once per file.

Never log keys, nonces or plaintext.
"""
import os
from typing import BinaryIO

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..core.exceptions import IntegrityError


KEY_SIZE = 32  # AES-256
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
CHUNK_SIZE = 64 * 1024


def generate_key() -> bytes:
    return AESGCM.generate_key(bit_length=KEY_SIZE * 8)


def generate_nonce() -> bytes:
    return os.urandom(NONCE_SIZE)


def _check_params(key: bytes, nonce: bytes) -> None:
    if len(key) != KEY_SIZE:
        raise ValueError(f"key must be {KEY_SIZE} bytes")
    if len(nonce) != NONCE_SIZE:
        raise ValueError(f"nonce must be {NONCE_SIZE} bytes")


def encrypt(plaintext: bytes, key: bytes, nonce: bytes) -> bytes:
    """Encrypt ``plaintext`` and return ``ciphertext || tag``."""
    _check_params(key, nonce)
    return AESGCM(key).encrypt(nonce, plaintext, None)


def decrypt(ciphertext: bytes, key: bytes, nonce: bytes) -> bytes:
    """Decrypt ``ciphertext || tag``; raise IntegrityError if it does not verify."""
    _check_params(key, nonce)
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        raise IntegrityError("ciphertext failed authentication") from None


def encrypt_stream(
    src: BinaryIO, dst: BinaryIO, key: bytes, nonce: bytes, chunk_size: int = CHUNK_SIZE
) -> int:
    """Encrypt ``src`` into ``dst`` chunk by chunk; return bytes written."""
    _check_params(key, nonce)
    encryptor = Cipher(algorithms.AES(key), modes.GCM(nonce)).encryptor()
    written = 0
    while True:
        chunk = src.read(chunk_size)
        if not chunk:
            break
        out = encryptor.update(chunk)
        dst.write(out)
        written += len(out)
    tail = encryptor.finalize()
    dst.write(tail)
    dst.write(encryptor.tag)
    return written + len(tail) + TAG_SIZE


def decrypt_stream(
    src: BinaryIO, dst: BinaryIO, key: bytes, nonce: bytes, chunk_size: int = CHUNK_SIZE
) -> int:
    """Decrypt ``src`` into ``dst``; return plaintext bytes written.

    Plaintext reaches ``dst`` before the tag is checked at the end of the
    stream, so ``dst`` must be a staging file that is discarded when this
    raises IntegrityError.
    """
    _check_params(key, nonce)
    decryptor = Cipher(algorithms.AES(key), modes.GCM(nonce)).decryptor()
    # the last TAG_SIZE bytes seen so far may be the tag
    pending = b""
    written = 0
    while True:
        chunk = src.read(chunk_size)
        if not chunk:
            break
        data = pending + chunk
        body, pending = data[:-TAG_SIZE], data[-TAG_SIZE:]
        if body:
            out = decryptor.update(body)
            dst.write(out)
            written += len(out)
    if len(pending) < TAG_SIZE:
        raise IntegrityError("ciphertext is truncated")
    try:
        tail = decryptor.finalize_with_tag(pending)
    except InvalidTag:
        raise IntegrityError("ciphertext failed authentication") from None
    dst.write(tail)
    return written + len(tail)
