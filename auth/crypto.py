"""
auth/crypto.py -- Symmetric confidentiality layer for issued tokens.

Uses Fernet (AES-128-CBC + HMAC-SHA256) via the cryptography library. The
signed JWT is wrapped in a Fernet token before it leaves the server, so the
claims are opaque to clients; the JWT signature underneath still provides
integrity and expiry.

Key: TOKEN_ENCRYPTION_KEY when set (a urlsafe-base64 Fernet key), otherwise a
key derived from SECRET_KEY with SHA-256.
"""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken


class DecryptError(ValueError):
    """Ciphertext was malformed, forged, or encrypted under another key."""


class SecretCodec:
    def __init__(self, key: str | bytes) -> None:
        self._fernet = Fernet(key)

    @classmethod
    def from_secret(cls, secret: str) -> "SecretCodec":
        """Derive a Fernet key from an arbitrary-length passphrase."""
        derived = hashlib.sha256(secret.encode("utf-8")).digest()
        return cls(base64.urlsafe_b64encode(derived))

    def encrypt(self, plain: str) -> str:
        return self._fernet.encrypt(plain.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except (InvalidToken, UnicodeError) as exc:
            raise DecryptError("Invalid encryption token") from exc
