"""
Application-layer encryption for PHI/PII fields.

Envelope format (must stay stable, existing rows depend on it):

    "enc:" + base64(iv[16] || tag[16] || ciphertext)

- AES-256-GCM with a 128-bit tag and a fresh random IV per call
- Key derived once with scrypt from ENCRYPTION_KEY and a fixed salt
- Values without the prefix are treated as legacy plaintext and passed through

Patient storage goes through encrypt_fields() and decrypted_view().
hash_email_for_lookup() is exported for services that need to find rows by an
encrypted email; nothing in this API looks users up by email yet.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
from collections.abc import Iterable, Mapping
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

PREFIX = "enc:"
KEY_LENGTH = 32
IV_LENGTH = 16
TAG_LENGTH = 16
MIN_SECRET_LENGTH = 32

# Shared with every deployment that ever wrote an envelope; changing it
# makes existing data unreadable.
KDF_SALT = b"clearcare-salt"
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1


class EncryptionConfigError(RuntimeError):
    """Raised at startup when production runs without usable key material."""


def derive_key(secret: str) -> bytes:
    """Derive the 32-byte AES key from the operator secret."""
    kdf = Scrypt(salt=KDF_SALT, length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(secret.encode("utf-8"))


def is_encrypted(value: str | None) -> bool:
    return bool(value) and value.startswith(PREFIX)


class EncryptionService:
    """AES-256-GCM envelope encryption for individual PHI fields."""

    def __init__(self, secret: str | None = None, *, production: bool = False):
        if production and (not secret or len(secret) < MIN_SECRET_LENGTH):
            raise EncryptionConfigError(
                "ENCRYPTION_KEY must be set in production "
                f"(at least {MIN_SECRET_LENGTH} chars, e.g. openssl rand -base64 32)"
            )
        self._enabled = bool(secret) and len(secret) >= MIN_SECRET_LENGTH
        self._key = derive_key(secret) if self._enabled else bytes(KEY_LENGTH)
        self._aesgcm = AESGCM(self._key)

    @classmethod
    def from_settings(cls, settings) -> "EncryptionService":
        return cls(settings.ENCRYPTION_KEY, production=settings.is_production)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def encrypt(self, plain_text: str | None) -> str:
        """Encrypt a string into an ``enc:`` envelope. Empty input gives ``""``."""
        if plain_text is None or plain_text == "":
            return ""
        if not self._enabled or is_encrypted(plain_text):
            return plain_text
        iv = os.urandom(IV_LENGTH)
        # AESGCM appends the tag; the envelope stores it ahead of the ciphertext.
        sealed = self._aesgcm.encrypt(iv, plain_text.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return PREFIX + base64.b64encode(iv + tag + ciphertext).decode("ascii")

    def decrypt(self, cipher_text: str | None) -> str:
        """
        Decrypt an ``enc:`` envelope.

        Anything that is not a valid envelope for the current key (legacy
        plaintext, truncated payloads, tampered data) is returned unchanged.
        """
        if cipher_text is None or cipher_text == "":
            return ""
        if not self._enabled or not is_encrypted(cipher_text):
            return cipher_text
        try:
            combined = base64.b64decode(cipher_text[len(PREFIX):])
            if len(combined) < IV_LENGTH + TAG_LENGTH:
                return cipher_text
            iv = combined[:IV_LENGTH]
            tag = combined[IV_LENGTH:IV_LENGTH + TAG_LENGTH]
            ciphertext = combined[IV_LENGTH + TAG_LENGTH:]
            plain = self._aesgcm.decrypt(iv, ciphertext + tag, None)
            return plain.decode("utf-8")
        except (InvalidTag, binascii.Error, ValueError):
            return cipher_text

    # ------------------------------------------------------------------
    # Helpers for building storage payloads and API responses
    # ------------------------------------------------------------------

    @staticmethod
    def hash_email_for_lookup(email: str | None) -> str:
        """Deterministic SHA-256 of the normalized email, for lookups on encrypted rows."""
        if not email:
            return ""
        return hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()

    def encrypt_fields(self, plain: Mapping[str, Any], keys: Iterable[str]) -> dict[str, str]:
        """
        Encrypt the listed keys of ``plain``.

        Absent keys are skipped. A key present with ``None`` maps to ``""``, so
        an explicit null clears the stored value.
        """
        return {key: self.encrypt(plain[key]) for key in keys if key in plain}

    def decrypted_view(self, raw: Mapping[str, Any], keys: Iterable[str]) -> "DecryptedView":
        return DecryptedView(raw, self, keys)


class DecryptedView(Mapping):
    """Read-only mapping that decrypts the selected keys on access."""

    def __init__(self, raw: Mapping[str, Any], encryption: EncryptionService, keys: Iterable[str]):
        self._raw = raw
        self._encryption = encryption
        self._keys = frozenset(keys)

    def __getitem__(self, key: str) -> Any:
        value = self._raw[key]
        if key in self._keys:
            return self._encryption.decrypt(value)
        return value

    def __iter__(self):
        return iter(self._raw)

    def __len__(self) -> int:
        return len(self._raw)
