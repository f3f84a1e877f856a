"""
auth/tokens.py -- JWT issue/verify, cookie wrapping, and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       username, email, role and a 24h expiry. verify() raises a typed
       TokenError (expired / malformed / bad signature) so the caller can log
       the kind; the client only ever sees a generic 401.

  Cookie transport: before a token goes into the authToken cookie it is
       encrypted with auth.crypto.TokenCipher, so the on-the-wire cookie is
       never a directly parseable JWT. unwrap_from_cookie() returns None for
       any envelope that does not open -- a stale or tampered cookie is an
       expected event, handled by clearing the cookie, not by raising.

  Bearer transport: tokens in "Authorization: Bearer" travel unencrypted and
       go straight to verify(). That channel is for non-browser clients.

  Passwords: bcrypt directly (no passlib wrapper). _DUMMY_HASH enables timing
       equalization in authenticate_user() so response time does not reveal
       whether a username exists [C1].

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from auth.crypto import TokenCipher
from auth.errors import DecryptionError, TokenBadSignature, TokenExpired, TokenMalformed
from auth.models import ROLE_NAMES, Principal

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("clubhouse.auth")

_ALGORITHM = "HS256"
DEFAULT_TOKEN_TTL = 24 * 60 * 60

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input past 72 bytes. The API layer caps password fields
    at 128 characters, and the store never sees plaintext.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Corrupt hash in the store, or a >72 byte password on bcrypt 4.x+.
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("clubhouse_timing_dummy")


def authenticate_user(store: UserStore, username: str, password: str) -> User | None:
    """Check a username/password pair with timing equalization [C1].

    bcrypt always runs, whether or not the user exists:
    - Unknown username: bcrypt runs against _DUMMY_HASH
    - Wrong password:   bcrypt runs against the real hash

    Returns the User on success, None on any failure. Callers must answer
    every None with the same generic 401.
    """
    user = store.get_by_username(username)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        return None
    return user


# ---------------------------------------------------------------------------
# Token service
# ---------------------------------------------------------------------------


class TokenService:
    """Issues, verifies and cookie-wraps authentication tokens.

    Constructed once by the app factory from Settings; holds no mutable state.
    """

    def __init__(self, secret_key: str, cipher: TokenCipher, expire_seconds: int = DEFAULT_TOKEN_TTL) -> None:
        if not secret_key:
            raise ValueError("secret_key is required")
        self._secret_key = secret_key
        self._cipher = cipher
        self.expire_seconds = expire_seconds

    def issue(self, principal: Principal, expire_seconds: int = 0) -> str:
        """Encode a signed JWT for the principal.

        expire_seconds overrides the configured lifetime; tests use a
        negative value to mint already-expired tokens.
        """
        duration = expire_seconds or self.expire_seconds
        now = datetime.now(timezone.utc)
        payload = {
            "sub": principal.username,
            "username": principal.username,
            "email": principal.email,
            "role": principal.role,
            "iat": now,
            "exp": now + timedelta(seconds=duration),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> Principal:
        """Verify signature and expiry and return the embedded principal.

        Raises:
            TokenMalformed:    not a JWT, wrong header, or missing/invalid claims.
            TokenBadSignature: signed with a different key or altered.
            TokenExpired:      signature valid but exp is in the past.
        """
        if not token or token.count(".") != 2:
            raise TokenMalformed()
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise TokenMalformed() from None
        if header.get("alg") != _ALGORITHM:
            raise TokenMalformed()

        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except ExpiredSignatureError:
            raise TokenExpired() from None
        except JWTClaimsError:
            raise TokenMalformed() from None
        except JWTError:
            raise TokenBadSignature() from None

        username = claims.get("username") or claims.get("sub")
        role = claims.get("role")
        if not isinstance(username, str) or not username or role not in ROLE_NAMES or "exp" not in claims:
            raise TokenMalformed()
        email = claims.get("email")
        return Principal(username=username, role=role, email=email if isinstance(email, str) else None)

    def wrap_for_cookie(self, token: str) -> str:
        return self._cipher.encrypt(token)

    def unwrap_from_cookie(self, envelope: str) -> str | None:
        try:
            return self._cipher.decrypt(envelope)
        except DecryptionError:
            logger.info("Auth cookie failed to decrypt; it will be cleared")
            return None
