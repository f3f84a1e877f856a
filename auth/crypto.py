"""
auth/crypto.py -- Symmetric envelope encryption, HMAC secret derivation, random IDs.

Security design decisions:
  Envelope: AES-256-GCM from the `cryptography` package. GCM authenticates the
       ciphertext, so a flipped bit is a decryption failure rather than a
       garbled plaintext handed to the JWT parser. Every call draws a fresh
       128-bit IV from os.urandom, so encrypting the same token twice never
       yields the same cookie value. Wire format: "<iv hex>:<ciphertext hex>".

  Key derivation: scrypt (n=2**14, r=8, p=1) over the server secret and a
       fixed application salt. scrypt is deliberately slow, so the key is
       derived once per TokenCipher instance and kept in memory.

  Secret derivation: HMAC-SHA256(server_key, context), base64. Used for the
       per-session CSRF secret so the session cookie itself never carries
       secret material.

Layer rule: no imports from api/. This module has no FastAPI dependency.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import os
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from auth.errors import DecryptionError

APP_SALT = b"clubhouse-auth-cookie"

_KEY_BYTES = 32
_IV_BYTES = 16
_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1


def _derive_key(server_secret: str, salt: bytes) -> bytes:
    kdf = Scrypt(salt=salt, length=_KEY_BYTES, n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P)
    return kdf.derive(server_secret.encode("utf-8"))


class TokenCipher:
    """Encrypts opaque strings (signed tokens) for transport in cookies.

    Usage:
        cipher = TokenCipher(settings.secret_key)
        envelope = cipher.encrypt(jwt_string)
        jwt_string = cipher.decrypt(envelope)   # raises DecryptionError
    """

    def __init__(self, server_secret: str, salt: bytes = APP_SALT) -> None:
        if not server_secret:
            raise ValueError("server_secret is required")
        self._aead = AESGCM(_derive_key(server_secret, salt))

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(_IV_BYTES)
        ciphertext = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, envelope: str) -> str:
        """Open an envelope produced by encrypt().

        Every failure mode -- wrong shape, bad hex, wrong IV length, tag
        mismatch, non-UTF-8 plaintext -- raises the same DecryptionError with
        no message, so callers cannot leak the reason.
        """
        iv_hex, sep, ct_hex = (envelope or "").partition(":")
        if not sep or not iv_hex or not ct_hex:
            raise DecryptionError()
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(ct_hex)
        except ValueError:
            raise DecryptionError() from None
        if len(iv) != _IV_BYTES:
            raise DecryptionError()
        try:
            plaintext = self._aead.decrypt(iv, ciphertext, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, UnicodeDecodeError):
            raise DecryptionError() from None


def derive_secret(server_key: str, context: str) -> str:
    """Return base64(HMAC-SHA256(server_key, context)).

    Pure and deterministic: the same (key, context) pair always yields the
    same secret, and nothing is stored.
    """
    if not context:
        raise ValueError("context is required for secret derivation")
    digest = hmac.new(server_key.encode("utf-8"), context.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def random_id(nbytes: int = 32) -> str:
    """Return a URL-safe random identifier with nbytes of entropy."""
    return secrets.token_urlsafe(nbytes)


def b64url(data: bytes) -> str:
    """Unpadded URL-safe base64, used for token components."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")
