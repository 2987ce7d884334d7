"""Column types that encrypt values at rest with AES-256-GCM.

Stored format is ``base64(nonce || ciphertext || tag)`` in a text column,
with a fresh random 12-byte nonce per write.  The key is read from
``settings.ENCRYPTION_KEY`` (64 hex chars) on every bind so tests can patch
it; the AESGCM instance is cached per key.
"""

import base64
import json
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy import Text
from sqlalchemy.types import TypeDecorator

from config import settings
from integrations.exceptions import NotConfiguredError

NONCE_SIZE = 12


class DecryptionError(Exception):
    """Stored ciphertext could not be authenticated with the configured key."""

    pass


@lru_cache(maxsize=4)
def _cipher_for(hex_key: str) -> AESGCM:
    try:
        key = bytes.fromhex(hex_key)
    except ValueError as exc:
        raise NotConfiguredError(
            "ENCRYPTION_KEY must be a 64-character hex string", provider_name="database"
        ) from exc
    if len(key) != 32:
        raise NotConfiguredError(
            f"ENCRYPTION_KEY must decode to 32 bytes, got {len(key)}",
            provider_name="database",
        )
    return AESGCM(key)


def get_cipher() -> AESGCM:
    """Return the AESGCM cipher for the configured key.

    Raises:
        NotConfiguredError: If ENCRYPTION_KEY is missing or malformed.
    """
    if not settings.ENCRYPTION_KEY:
        raise NotConfiguredError(
            "ENCRYPTION_KEY is not configured; cannot read or write encrypted fields",
            provider_name="database",
        )
    return _cipher_for(settings.ENCRYPTION_KEY)


def encrypt_text(plaintext: str) -> str:
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = get_cipher().encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.b64encode(nonce + ciphertext).decode("ascii")


def decrypt_text(stored: str) -> str:
    raw = base64.b64decode(stored)
    if len(raw) < NONCE_SIZE + 16:
        raise DecryptionError("Encrypted value is too short")
    try:
        plaintext = get_cipher().decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], None)
    except InvalidTag as exc:
        raise DecryptionError("Encrypted value failed authentication") from exc
    return plaintext.decode("utf-8")


class EncryptedString(TypeDecorator):
    """A string stored encrypted."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return encrypt_text(str(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return decrypt_text(value)


class EncryptedJSON(TypeDecorator):
    """A JSON-serializable value (list or dict) stored encrypted.

    Mutations in place are not tracked; assign a new value to persist changes.
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return encrypt_text(json.dumps(value, separators=(",", ":"), default=str))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return json.loads(decrypt_text(value))
