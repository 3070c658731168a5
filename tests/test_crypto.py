"""Unit tests for inventory/crypto.py -- proxy password encryption at rest.

Covers:
- encrypt()/decrypt() round trip; token never contains the plaintext
- a fresh nonce per call (same plaintext -> different tokens)
- wrong key, tampered and truncated tokens raise CredentialDecryptionError
- key selection in from_settings(): CREDENTIAL_KEY wins over SECRET_KEY
"""

import base64
import os

import pytest

from core.config import Settings
from inventory.crypto import CredentialCipher, CredentialDecryptionError, derive_key


@pytest.fixture
def cipher() -> CredentialCipher:
    return CredentialCipher(os.urandom(32))


def test_round_trip(cipher: CredentialCipher) -> None:
    token = cipher.encrypt("hunter2")
    assert "hunter2" not in token
    assert cipher.decrypt(token) == "hunter2"


def test_unicode_round_trip(cipher: CredentialCipher) -> None:
    assert cipher.decrypt(cipher.encrypt("pässwörd-✓")) == "pässwörd-✓"


def test_each_encryption_uses_a_fresh_nonce(cipher: CredentialCipher) -> None:
    assert cipher.encrypt("same") != cipher.encrypt("same")


def test_wrong_key_fails(cipher: CredentialCipher) -> None:
    token = cipher.encrypt("hunter2")
    with pytest.raises(CredentialDecryptionError):
        CredentialCipher(os.urandom(32)).decrypt(token)


def test_tampered_token_fails(cipher: CredentialCipher) -> None:
    raw = bytearray(base64.b64decode(cipher.encrypt("hunter2")))
    raw[-1] ^= 0x01
    with pytest.raises(CredentialDecryptionError):
        cipher.decrypt(base64.b64encode(bytes(raw)).decode())


def test_truncated_and_invalid_tokens_fail(cipher: CredentialCipher) -> None:
    with pytest.raises(CredentialDecryptionError):
        cipher.decrypt(base64.b64encode(b"short").decode())
    with pytest.raises(CredentialDecryptionError):
        cipher.decrypt("%%% not base64 %%%")


def test_key_must_be_32_bytes() -> None:
    with pytest.raises(ValueError):
        CredentialCipher(b"too-short")


def test_from_settings_prefers_credential_key() -> None:
    key = os.urandom(32)
    settings = Settings(debug=True, secret_key="s" * 40, credential_key=base64.b64encode(key).decode())
    token = CredentialCipher.from_settings(settings).encrypt("pw")
    assert CredentialCipher(key).decrypt(token) == "pw"


def test_from_settings_derives_from_secret_key() -> None:
    settings = Settings(debug=True, secret_key="k" * 40, credential_key="")
    token = CredentialCipher.from_settings(settings).encrypt("pw")
    assert CredentialCipher(derive_key("k" * 40)).decrypt(token) == "pw"


def test_invalid_credential_key_is_rejected_by_settings() -> None:
    with pytest.raises(ValueError):
        Settings(debug=True, secret_key="k" * 40, credential_key=base64.b64encode(b"sixteen-bytes!!!").decode())
