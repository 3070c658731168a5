"""
inventory/crypto.py -- Encryption at rest for stored proxy passwords.

AES-256-GCM (authenticated encryption). Every encrypt() call draws a fresh
12-byte nonce and stores it in front of the ciphertext, so each token carries
everything decrypt() needs besides the key:

    token = base64( nonce[12] || ciphertext || tag[16] )

Key source, in order:
  1. CREDENTIAL_KEY (base64, 32 bytes) from settings.
  2. HKDF-SHA256 over SECRET_KEY with a fixed context label.

Option 2 ties stored passwords to SECRET_KEY: rotating it makes existing
proxy passwords undecryptable. Deployments that rotate SECRET_KEY should set
CREDENTIAL_KEY.
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from core.config import Settings

_NONCE_BYTES = 12
_HKDF_INFO = b"proxyvault/proxy-credentials/v1"


class CredentialDecryptionError(Exception):
    """Stored token is corrupt or was written under a different key."""


def derive_key(secret: str) -> bytes:
    """Derive a 256-bit key from an arbitrary-length secret string."""
    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=_HKDF_INFO)
    return hkdf.derive(secret.encode("utf-8"))


class CredentialCipher:
    """Encrypts and decrypts proxy passwords.

    Usage:
        cipher = CredentialCipher.from_settings(get_settings())
        token = cipher.encrypt("hunter2")
        cipher.decrypt(token)  # "hunter2"
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != 32:
            raise ValueError("Credential key must be exactly 32 bytes.")
        self._aead = AESGCM(key)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialCipher":
        if settings.credential_key:
            return cls(base64.b64decode(settings.credential_key))
        return cls(derive_key(settings.secret_key))

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(_NONCE_BYTES)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            data = base64.b64decode(token, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CredentialDecryptionError("Stored credential is not valid base64.") from exc
        if len(data) <= _NONCE_BYTES:
            raise CredentialDecryptionError("Stored credential is truncated.")
        nonce, ciphertext = data[:_NONCE_BYTES], data[_NONCE_BYTES:]
        try:
            return self._aead.decrypt(nonce, ciphertext, None).decode("utf-8")
        except InvalidTag as exc:
            raise CredentialDecryptionError("Stored credential failed authentication.") from exc
