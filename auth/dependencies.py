"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The heavy lifting happens once per request in auth/middleware.py, which
leaves an AuthContext on request.state.auth. These helpers only read it:

  check_auth()      -- soft variant; returns the Principal or None.
  authenticate()    -- hard variant; raises MissingCredential (no credential
                       presented) or InvalidOrExpiredToken (credential failed).
  require_role(...) -- wraps authenticate() and raises InsufficientRole.

Any cookie cleanup decided by the pipeline still happens when these raise:
the middleware writes cookies on the error response too.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.errors import InsufficientRole, InvalidOrExpiredToken, MalformedEncryptedPayload, MissingCredential
from auth.middleware import UNDECRYPTABLE
from auth.models import AuthContext, Principal, Role


def get_auth_context(request: Request) -> AuthContext:
    ctx = getattr(request.state, "auth", None)
    if ctx is None:
        raise RuntimeError("AuthPipelineMiddleware is not installed on this application")
    return ctx


def check_auth(request: Request) -> Principal | None:
    """Optional authentication. Never raises for missing or bad credentials."""
    return get_auth_context(request).principal


def authenticate(request: Request) -> Principal:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: Principal = Depends(authenticate)): ...
    """
    ctx = get_auth_context(request)
    if ctx.principal is not None:
        return ctx.principal
    if ctx.credential_source is None:
        raise MissingCredential()
    if ctx.failure == UNDECRYPTABLE:
        raise MalformedEncryptedPayload()
    raise InvalidOrExpiredToken()


def require_role(*roles: str) -> Callable[[Request], Principal]:
    """Build a dependency that admits only the given roles.

    Unknown role names fail at import time rather than silently locking a
    route.
    """
    allowed = [Role(r).value for r in roles]
    if not allowed:
        raise ValueError("require_role() needs at least one role")

    def guard(request: Request) -> Principal:
        principal = authenticate(request)
        if principal.role not in allowed:
            raise InsufficientRole(allowed, principal.role)
        return principal

    guard.__name__ = "require_" + "_or_".join(allowed)
    return guard


require_admin = require_role("admin")
require_editor = require_role("admin", "editor")
