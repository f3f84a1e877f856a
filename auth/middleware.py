"""
auth/middleware.py -- The per-request auth pipeline.

Pattern: Interceptor / Chain of Responsibility, made explicit. One
AuthContext (auth/models.py) is created per request, stored on
request.state.auth, and passed through four stage functions. Each stage
documents what it reads and what it may set; none of them touches the
others' fields.

  1. establish_session  -- csrfSessionId cookie in, session_id out (mints one
                           when absent, even for anonymous visitors, so a CSRF
                           secret exists before any form is rendered).
  2. resolve_principal  -- authToken cookie (unwrap + verify) or Bearer header
                           (verify only). Never rejects; records the failure
                           and flags a bad cookie for clearing.
  3. enforce_csrf       -- Protected requests must carry a token matching the
                           session. Short-circuits with 403.
  4. write_cookies      -- runs after the handler (or the 403) and turns the
                           context into Set-Cookie headers.

Resolution (2) runs before the CSRF gate (3) because logout is only
protected when the caller is authenticated. Since (2) never rejects, the
observable order is still: CSRF rejection first, then 401/403 from the route
guards in auth/dependencies.py.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import parse_qs

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from auth.cookies import AUTH_COOKIE, SESSION_COOKIE, CookiePolicy
from auth.crypto import TokenCipher, random_id
from auth.csrf import CSRF_FORM_FIELD, CSRF_HEADER, CsrfEngine
from auth.errors import CSRFValidationFailed, TokenError
from auth.models import AuthContext
from auth.tokens import TokenService

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("clubhouse.auth")

UNDECRYPTABLE = "undecryptable"


@dataclass(frozen=True)
class SecurityServices:
    """The immutable set of auth components, built once per app from Settings."""

    cookies: CookiePolicy
    tokens: TokenService
    csrf: CsrfEngine
    session_max_age: int
    token_max_age: int

    @classmethod
    def from_settings(cls, settings: Settings, api_prefix: str = "/api") -> SecurityServices:
        cipher = TokenCipher(settings.secret_key)
        return cls(
            cookies=CookiePolicy.from_settings(settings),
            tokens=TokenService(settings.secret_key, cipher, expire_seconds=settings.token_expire_seconds),
            csrf=CsrfEngine(
                settings.csrf_secret,
                exempt_paths={f"{api_prefix}/auth/login", f"{api_prefix}/csrf-token"},
                logout_path=f"{api_prefix}/auth/logout",
            ),
            session_max_age=settings.session_expire_seconds,
            token_max_age=settings.token_expire_seconds,
        )


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


def establish_session(ctx: AuthContext, request: Request) -> None:
    """Reads: csrfSessionId cookie. Sets: session_id, session_is_new, session_dirty."""
    session_id = request.cookies.get(SESSION_COOKIE)
    if session_id:
        ctx.session_id = session_id
        return
    ctx.session_id = random_id()
    ctx.session_is_new = True
    ctx.session_dirty = True


def read_credential(request: Request) -> tuple[str | None, str | None]:
    """Return (raw value, source). The cookie wins over the header."""
    cookie = request.cookies.get(AUTH_COOKIE)
    if cookie:
        return cookie, "cookie"
    scheme, _, value = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip(), "bearer"
    return None, None


def resolve_principal(ctx: AuthContext, request: Request, tokens: TokenService) -> None:
    """Reads: authToken cookie, Authorization header.
    Sets: principal, credential_source, failure, clear_auth_cookie.
    """
    raw, source = read_credential(request)
    if raw is None:
        return
    ctx.credential_source = source

    token = raw
    if source == "cookie":
        token = tokens.unwrap_from_cookie(raw)
        if token is None:
            ctx.failure = UNDECRYPTABLE
            ctx.clear_auth_cookie = True
            return

    try:
        ctx.principal = tokens.verify(token)
    except TokenError as exc:
        ctx.failure = exc.kind
        logger.info("Rejected %s token on %s (%s)", source, request.url.path, exc.kind)
        if source == "cookie":
            ctx.clear_auth_cookie = True


async def _token_from_body(request: Request) -> str | None:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            data = json.loads(await request.body() or b"null")
        except ValueError:
            return None
        value = data.get(CSRF_FORM_FIELD) if isinstance(data, dict) else None
        return value if isinstance(value, str) else None
    if content_type.startswith("application/x-www-form-urlencoded"):
        values = parse_qs((await request.body()).decode("latin-1")).get(CSRF_FORM_FIELD)
        return values[0] if values else None
    return None


async def enforce_csrf(ctx: AuthContext, request: Request, csrf: CsrfEngine) -> None:
    """Reads: session_id, session_is_new, principal. Raises CSRFValidationFailed.

    A session minted on this very request counts as "no session cookie": the
    client cannot hold a token for a session it has not seen yet.
    """
    if not csrf.requires_check(request.method, request.url.path, ctx.authenticated):
        return
    token = request.headers.get(CSRF_HEADER) or await _token_from_body(request)
    csrf.validate(None if ctx.session_is_new else ctx.session_id, token)


def write_cookies(ctx: AuthContext, response: Response, services: SecurityServices) -> None:
    """Reads: the whole context. Writes: Set-Cookie headers only."""
    cookies = services.cookies
    if ctx.ended:
        cookies.clear_all_paths(response, AUTH_COOKIE)
        cookies.clear_all_paths(response, SESSION_COOKIE)
        return
    if ctx.session_dirty:
        cookies.set(response, SESSION_COOKIE, ctx.session_id, max_age=services.session_max_age)
    if ctx.auth_cookie is not None:
        cookies.set(response, AUTH_COOKIE, ctx.auth_cookie, max_age=services.token_max_age)
    elif ctx.clear_auth_cookie:
        cookies.clear_all_paths(response, AUTH_COOKIE)


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


class AuthPipelineMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, services: SecurityServices) -> None:
        super().__init__(app)
        self.services = services

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        ctx = AuthContext()
        request.state.auth = ctx

        establish_session(ctx, request)
        resolve_principal(ctx, request, self.services.tokens)
        try:
            await enforce_csrf(ctx, request, self.services.csrf)
        except CSRFValidationFailed as exc:
            response: Response = JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})
        else:
            response = await call_next(request)

        write_cookies(ctx, response, self.services)
        return response
