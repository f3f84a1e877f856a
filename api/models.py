"""
API request and response models for Clubhouse REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Field names follow the browser client's camelCase contract (csrfToken,
displayName, isActive); aliases keep the Python side snake_case.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    admin = "admin"
    editor = "editor"
    viewer = "viewer"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


# ---------------------------------------------------------------------------
# Session / auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login.

    max_length on password keeps input well below bcrypt's 72-byte
    truncation point for ordinary passwords.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=128)


class PrincipalOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str
    email: Optional[str] = None
    role: str


class CsrfTokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    csrf_token: str = Field(serialization_alias="csrfToken")


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user: PrincipalOut
    csrf_token: str = Field(serialization_alias="csrfToken")


class StatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    authenticated: bool
    role: str
    user: Optional[PrincipalOut] = None
    csrf_token: str = Field(serialization_alias="csrfToken")


class SuccessResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# User management
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/users."""

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    username: str = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=6, max_length=128)
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    role: RoleEnum
    display_name: Optional[str] = Field(default=None, max_length=100, alias="displayName")
    notes: Optional[str] = None


class UserUpdate(BaseModel):
    """Request body for PUT /api/users/{id}. Every field is optional; null clears email or notes."""

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    role: Optional[RoleEnum] = None
    display_name: Optional[str] = Field(default=None, max_length=100, alias="displayName")
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    notes: Optional[str] = None


class PasswordChange(BaseModel):
    password: str = Field(min_length=6, max_length=128)


class UserResponse(BaseModel):
    """A user record as returned to admins. Never includes the password hash."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    username: str
    email: Optional[str] = None
    role: str
    display_name: Optional[str] = Field(default=None, serialization_alias="displayName")
    notes: Optional[str] = None
    created_by: Optional[str] = Field(default=None, serialization_alias="createdBy")
    created_at: str = Field(serialization_alias="createdAt")
    last_login: Optional[str] = Field(default=None, serialization_alias="lastLogin")
    is_active: bool = Field(serialization_alias="isActive")


class UserMutationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str
    user: UserResponse
