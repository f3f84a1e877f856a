"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Dataclasses own
domain shape; the token service, CSRF engine and stores do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    admin = "admin"
    editor = "editor"
    viewer = "viewer"


# Never stored and never put in a token; reported for anonymous requests.
GUEST_ROLE = "guest"

ROLE_NAMES: frozenset[str] = frozenset(r.value for r in Role)


@dataclass(frozen=True)
class Principal:
    """The authenticated identity attached to a request.

    Rebuilt from the verified token claims on every request. Nothing else
    constructs one except the login flow, which builds it from a User.
    """

    username: str
    role: str
    email: str | None = None

    @classmethod
    def from_user(cls, user: User) -> Principal:
        return cls(username=user.username, role=user.role, email=user.email)

    def to_public(self) -> dict:
        return {"username": self.username, "email": self.email, "role": self.role}


@dataclass
class User:
    """A stored account. hashed_password is a bcrypt hash, never returned by the API."""

    username: str
    role: str  # "admin", "editor", "viewer"
    id: int | None = None
    email: str | None = None
    hashed_password: str | None = None
    display_name: str | None = None
    notes: str | None = None
    created_by: str | None = None
    created_at: str | None = None
    last_login: str | None = None
    is_active: bool = True


@dataclass
class AuthContext:
    """Per-request state threaded through the auth pipeline (auth/middleware.py).

    Stage contracts:
      establish_session  sets session_id, session_is_new, session_dirty
      resolve_principal  sets principal, credential_source, failure, clear_auth_cookie
      enforce_csrf       reads session_id, session_is_new, principal
      route handlers     may call rotate_session(), issue_auth_cookie(), end_session()
      write_cookies      reads everything, writes Set-Cookie headers
    """

    session_id: str = ""
    session_is_new: bool = False
    session_dirty: bool = False
    principal: Principal | None = None
    credential_source: str | None = None  # "cookie" | "bearer"
    failure: str | None = None  # TokenError.kind, for logging only
    clear_auth_cookie: bool = False
    auth_cookie: str | None = None  # encrypted envelope to set on the response
    ended: bool = False

    @property
    def authenticated(self) -> bool:
        return self.principal is not None

    @property
    def role(self) -> str:
        return self.principal.role if self.principal else GUEST_ROLE

    def rotate_session(self, session_id: str) -> None:
        """Replace the session identifier (login) so a pre-login value cannot be fixed."""
        self.session_id = session_id
        self.session_dirty = True

    def issue_auth_cookie(self, envelope: str) -> None:
        self.auth_cookie = envelope
        self.clear_auth_cookie = False

    def end_session(self) -> None:
        """Clear both cookies on every known path (logout)."""
        self.ended = True
        self.principal = None
        self.auth_cookie = None
        self.session_dirty = False
