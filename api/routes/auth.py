"""
api/routes/auth.py -- Session, login and CSRF token endpoints.

Routes:
  GET  /api/csrf-token   -- issue a CSRF token for the caller's session
  POST /api/auth/login   -- password login; sets authToken, rotates csrfSessionId
  POST /api/auth/logout  -- clears both cookies on every known path
  GET  /api/auth/status  -- optional auth; reports who the caller is
  GET  /api/auth/me      -- current principal (requires auth)

Cookies are never written here directly. Handlers record what should happen
on the AuthContext and the pipeline middleware turns it into Set-Cookie
headers, so a stale-cookie clear and a fresh login can never race on the same
response.

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT). It lives on its
       own router, built per app by build_login_router(), so the limit comes
       from that app's Settings.
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on login responses.
  Session fixation: login always mints a fresh csrfSessionId.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter

from api.models import CsrfTokenResponse, LoginRequest, LoginResponse, PrincipalOut, StatusResponse, SuccessResponse
from auth.crypto import random_id
from auth.dependencies import authenticate, check_auth, get_auth_context
from auth.middleware import SecurityServices
from auth.models import Principal
from auth.store import UserStore
from auth.tokens import authenticate_user

logger = logging.getLogger("clubhouse.api.auth")

# Auth policy:
# - GET  /api/csrf-token:   public, CSRF allow-list
# - POST /api/auth/login:   public, CSRF allow-list -- the client has no token yet;
#                           registered per app by build_login_router()
# - POST /api/auth/logout:  CSRF required only when authenticated
# - GET  /api/auth/status:  optional auth (check_auth)
# - GET  /api/auth/me:      requires auth (authenticate)
router = APIRouter()


def _services(request: Request) -> SecurityServices:
    return request.app.state.security


@router.get("/csrf-token", response_model=CsrfTokenResponse)
async def csrf_token(request: Request) -> CsrfTokenResponse:
    """Return a token bound to the caller's (possibly just created) session."""
    ctx = get_auth_context(request)
    return CsrfTokenResponse(csrf_token=_services(request).csrf.issue_token(ctx.session_id))


def login(request: Request, body: LoginRequest, response: Response) -> LoginResponse | JSONResponse:
    """Authenticate with username and password.

    Returns the same generic error for wrong username and wrong password to
    avoid leaking username existence.
    """
    user_store: UserStore = request.app.state.user_store
    services = _services(request)
    ctx = get_auth_context(request)

    user = authenticate_user(user_store, body.username, body.password)
    if user is None:
        logger.warning("Failed login attempt")
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid username or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    principal = Principal.from_user(user)
    token = services.tokens.issue(principal)
    ctx.issue_auth_cookie(services.tokens.wrap_for_cookie(token))
    ctx.rotate_session(random_id())
    user_store.update_last_login(user.id)
    logger.info("User %s logged in (role=%s)", user.username, user.role)

    response.headers["Cache-Control"] = "no-store"  # [M5]
    return LoginResponse(
        user=PrincipalOut(**principal.to_public()),
        csrf_token=services.csrf.issue_token(ctx.session_id),
    )


def build_login_router(limiter: Limiter, rate_limit: str) -> APIRouter:
    """Mount POST /auth/login behind the app's own limiter [H2].

    slowapi enforces a route limit only inside its decorator, so the wrapped
    function is what gets registered as the endpoint.
    """
    login_router = APIRouter()
    login_router.add_api_route(
        "/auth/login",
        limiter.limit(rate_limit)(login),
        methods=["POST"],
        response_model=LoginResponse,
    )
    return login_router


@router.post("/auth/logout", response_model=SuccessResponse, response_model_exclude_none=True)
async def logout(request: Request) -> SuccessResponse:
    """Clear the auth and session cookies. Idempotent.

    When the caller is authenticated the pipeline has already required a
    valid CSRF token before this handler runs.
    """
    ctx = get_auth_context(request)
    if ctx.principal is not None:
        logger.info("User %s logged out", ctx.principal.username)
    ctx.end_session()
    return SuccessResponse(success=True)


@router.get("/auth/status", response_model=StatusResponse, response_model_exclude_none=True)
async def auth_status(request: Request, principal: Principal | None = Depends(check_auth)) -> StatusResponse:
    """Report whether the caller is logged in, plus a CSRF token for this session.

    Anonymous callers are reported with the "guest" role.
    """
    ctx = get_auth_context(request)
    return StatusResponse(
        authenticated=principal is not None,
        role=ctx.role,
        user=PrincipalOut(**principal.to_public()) if principal else None,
        csrf_token=_services(request).csrf.issue_token(ctx.session_id),
    )


@router.get("/auth/me", response_model=PrincipalOut)
async def me(principal: Principal = Depends(authenticate)) -> PrincipalOut:
    """Return identity information for the currently authenticated principal."""
    return PrincipalOut(**principal.to_public())
