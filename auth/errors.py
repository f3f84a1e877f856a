"""
auth/errors.py -- Error taxonomy for the session, token and CSRF layer.

Two families:

  TokenError / DecryptionError -- internal. Raised by auth/tokens.py and
      auth/crypto.py to say *why* a credential was rejected. They are logged
      by kind and never rendered to a client.

  AuthError -- client-facing. Carries the HTTP status, a stable machine code
      and a deliberately uninformative message. The API layer renders these
      into the {"error": {...}} envelope.

Messages are uniform on purpose: a client never learns whether a username
exists, whether a token expired or was tampered with, or whether the CSRF
session cookie or the CSRF token was the part that failed.
"""

from __future__ import annotations


class DecryptionError(Exception):
    """An encrypted envelope could not be opened. Carries no detail."""


# ---------------------------------------------------------------------------
# Token verification (internal)
# ---------------------------------------------------------------------------


class TokenError(Exception):
    """Base class for signed-token verification failures."""

    kind = "invalid"


class TokenExpired(TokenError):
    kind = "expired"


class TokenMalformed(TokenError):
    kind = "malformed"


class TokenBadSignature(TokenError):
    kind = "bad_signature"


# ---------------------------------------------------------------------------
# Client-facing
# ---------------------------------------------------------------------------


class AuthError(Exception):
    status_code = 401
    code = "unauthorized"
    message = "Authentication required."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class MissingCredential(AuthError):
    status_code = 401
    code = "unauthorized"
    message = "Authentication required."


class InvalidOrExpiredToken(AuthError):
    status_code = 401
    code = "invalid_token"
    message = "Invalid or expired token."


class MalformedEncryptedPayload(InvalidOrExpiredToken):
    """The auth cookie did not decrypt. Rendered exactly like InvalidOrExpiredToken."""


class InsufficientRole(AuthError):
    """The principal is authenticated but its role is not allowed on the route.

    required and current are disclosed so the client can explain the refusal;
    role names are not sensitive.
    """

    status_code = 403
    code = "forbidden"
    message = "Insufficient permissions."

    def __init__(self, required: list[str], current: str) -> None:
        super().__init__()
        self.required = list(required)
        self.current = current

    def to_dict(self) -> dict:
        return {**super().to_dict(), "required": self.required, "current": self.current}


class CSRFValidationFailed(AuthError):
    status_code = 403
    code = "csrf_failed"
    message = "CSRF validation failed."
