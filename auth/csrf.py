"""
auth/csrf.py -- Stateless synchronizer-token CSRF protection.

Scheme:
  session_id  random opaque value in the csrfSessionId cookie (httpOnly).
              Never used as a key by itself.
  secret      HMAC-SHA256(CSRF_SECRET, session_id), base64. Recomputed on
              every request; never stored, never sent to the client.
  token       "<salt>.<b64url(HMAC-SHA256(secret, salt))>" with a fresh random
              salt per issue. Any number of tokens are valid for one secret,
              which keeps several open tabs working. Verification re-derives
              the secret and recomputes the MAC -- no token store.

A forged session cookie is useless without CSRF_SECRET, and a token minted for
one session never validates against another session's cookie, even for the
same user.

Request classification:
  Unprotected  GET / HEAD / OPTIONS, the allow-listed paths (login and the
               public token endpoint), and logout when the caller is not
               authenticated (nothing to invalidate).
  Protected    everything else.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from collections.abc import Iterable

from auth.crypto import b64url, derive_secret, random_id
from auth.errors import CSRFValidationFailed

logger = logging.getLogger("clubhouse.auth.csrf")

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
CSRF_HEADER = "X-CSRF-Token"
CSRF_FORM_FIELD = "_csrf"

_SALT_BYTES = 9
_SEPARATOR = "."


class CsrfEngine:
    """Derives per-session secrets and issues/verifies synchronizer tokens.

    Usage:
        engine = CsrfEngine(settings.csrf_secret, exempt_paths={"/api/auth/login"})
        token = engine.issue_token(session_id)
        engine.validate(session_id, token)   # raises CSRFValidationFailed
    """

    def __init__(self, secret: str, exempt_paths: Iterable[str] = (), logout_path: str | None = None) -> None:
        if not secret:
            raise ValueError("secret is required")
        self._secret = secret
        self.exempt_paths = frozenset(exempt_paths)
        self.logout_path = logout_path

    def derive(self, session_id: str) -> str:
        return derive_secret(self._secret, session_id)

    def issue_token(self, session_id: str) -> str:
        salt = random_id(_SALT_BYTES)
        return f"{salt}{_SEPARATOR}{self._mac(self.derive(session_id), salt)}"

    def verify_token(self, session_id: str, token: str) -> bool:
        salt, sep, mac = token.partition(_SEPARATOR)
        if not sep or not salt or not mac:
            return False
        expected = self._mac(self.derive(session_id), salt)
        return hmac.compare_digest(mac.encode("ascii", "replace"), expected.encode("ascii"))

    def requires_check(self, method: str, path: str, authenticated: bool) -> bool:
        if method.upper() in SAFE_METHODS:
            return False
        if path in self.exempt_paths:
            return False
        if self.logout_path is not None and path == self.logout_path and not authenticated:
            return False
        return True

    def validate(self, session_id: str | None, token: str | None) -> None:
        """Raise CSRFValidationFailed unless token is valid for session_id.

        The three failure causes are logged separately but share one client
        message; the response never says which part was wrong.
        """
        if not session_id:
            logger.warning("CSRF rejected: no session cookie")
            raise CSRFValidationFailed()
        if not token:
            logger.warning("CSRF rejected: no token")
            raise CSRFValidationFailed()
        if not self.verify_token(session_id, token):
            logger.warning("CSRF rejected: token does not match session")
            raise CSRFValidationFailed()

    @staticmethod
    def _mac(secret: str, salt: str) -> str:
        digest = hmac.new(secret.encode("utf-8"), salt.encode("utf-8"), hashlib.sha256).digest()
        return b64url(digest)
