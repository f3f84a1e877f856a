"""
api/routes/users.py -- Account management endpoints (admin only).

Routes:
  GET    /api/users                 -- list all users
  GET    /api/users/{id}            -- one user
  POST   /api/users                 -- create user
  PUT    /api/users/{id}            -- update email/role/displayName/isActive/notes
  PUT    /api/users/{id}/password   -- set a new password
  DELETE /api/users/{id}            -- delete user

Every route depends on require_admin. The mutating ones are also behind the
CSRF gate in the auth pipeline, so a forged cross-site POST is refused with
403 before the guard runs.

Security:
  [M4] Self-deactivation, self-deletion, and removal of the last active admin
       are refused.
  Password hashes never leave the store; UserResponse has no such field.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError

from api.models import PasswordChange, SuccessResponse, UserCreate, UserMutationResponse, UserResponse, UserUpdate
from auth.dependencies import require_admin
from auth.models import Principal, User
from auth.store import UserStore
from auth.tokens import hash_password

logger = logging.getLogger("clubhouse.api.users")

router = APIRouter()


def _store(request: Request) -> UserStore:
    return request.app.state.user_store


def _get_or_404(store: UserStore, user_id: int) -> User:
    user = store.get_by_id(user_id)
    if user is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return user


def _guard_last_admin(store: UserStore, target: User) -> None:
    if target.role == "admin" and target.is_active and store.count_active_admins() <= 1:
        raise HTTPException(
            status_code=400,
            detail={"code": "last_admin", "message": "Cannot remove the last active admin account."},
        )


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, admin: Principal = Depends(require_admin)) -> list[UserResponse]:
    return [_user_to_response(u) for u in _store(request).list_users()]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int, admin: Principal = Depends(require_admin)) -> UserResponse:
    return _user_to_response(_get_or_404(_store(request), user_id))


@router.post("/users", response_model=UserMutationResponse, status_code=201)
def create_user(request: Request, body: UserCreate, admin: Principal = Depends(require_admin)) -> UserMutationResponse:
    """Create a new account. Username and email must be unique."""
    store = _store(request)
    if body.email and store.email_exists(body.email):
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "Email already exists."},
        )

    new_user = User(
        username=body.username,
        email=body.email or None,
        role=body.role.value,
        hashed_password=hash_password(body.password),
        display_name=body.display_name,
        notes=body.notes,
        created_by=admin.username,
    )
    try:
        user_id = store.create_user(new_user)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "Username already exists."},
        ) from exc

    logger.info("User %s created by %s (role=%s)", body.username, admin.username, body.role.value)
    return UserMutationResponse(
        message="User created successfully",
        user=_user_to_response(store.get_by_id(user_id)),
    )


@router.put("/users/{user_id}", response_model=UserMutationResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserUpdate,
    admin: Principal = Depends(require_admin),
) -> UserMutationResponse:
    """Update profile fields, role or active status."""
    store = _store(request)
    target = _get_or_404(store, user_id)

    # email and notes are nullable: an explicit null clears them, an omitted
    # field leaves them alone.
    sent = body.model_fields_set
    updates: dict = {}
    if "email" in sent:
        if body.email is not None and store.email_exists(body.email, exclude_user_id=user_id):
            raise HTTPException(
                status_code=409,
                detail={"code": "conflict", "message": "Email already in use by another user."},
            )
        updates["email"] = body.email
    if body.display_name is not None:
        updates["display_name"] = body.display_name
    if "notes" in sent:
        updates["notes"] = body.notes
    if body.role is not None and body.role.value != target.role:
        _guard_last_admin(store, target)
        updates["role"] = body.role.value
    if body.is_active is not None and body.is_active != target.is_active:
        if not body.is_active:
            # [M4]
            if target.username == admin.username:
                raise HTTPException(
                    status_code=400,
                    detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
                )
            _guard_last_admin(store, target)
        updates["is_active"] = body.is_active

    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    store.update_user(user_id, **updates)
    logger.info("User %s updated by %s (%s)", target.username, admin.username, ", ".join(sorted(updates)))
    return UserMutationResponse(
        message="User updated successfully",
        user=_user_to_response(store.get_by_id(user_id)),
    )


@router.put("/users/{user_id}/password", response_model=SuccessResponse)
def change_password(
    request: Request,
    user_id: int,
    body: PasswordChange,
    admin: Principal = Depends(require_admin),
) -> SuccessResponse:
    store = _store(request)
    target = _get_or_404(store, user_id)
    store.update_user(user_id, hashed_password=hash_password(body.password))
    logger.info("Password for %s changed by %s", target.username, admin.username)
    return SuccessResponse(message="Password updated successfully")


@router.delete("/users/{user_id}", response_model=SuccessResponse)
def delete_user(request: Request, user_id: int, admin: Principal = Depends(require_admin)) -> SuccessResponse:
    """Delete an account.

    Tokens already issued to the deleted user remain valid until they expire.
    """
    store = _store(request)
    target = _get_or_404(store, user_id)
    if target.username == admin.username:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deletion", "message": "You cannot delete your own account."},
        )
    _guard_last_admin(store, target)
    store.delete_user(user_id)
    logger.info("User %s deleted by %s", target.username, admin.username)
    return SuccessResponse(message="User deleted successfully")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _user_to_response(user: User | None) -> UserResponse:
    if user is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        display_name=user.display_name,
        notes=user.notes,
        created_by=user.created_by,
        created_at=user.created_at or "",
        last_login=user.last_login,
        is_active=user.is_active,
    )
