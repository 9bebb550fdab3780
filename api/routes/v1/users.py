"""
api/routes/v1/users.py -- User directory management (admin only).

Routes:
  GET   /api/v1/users         -- list all users
  PATCH /api/v1/users/{id}    -- change role and/or disabled flag

Disabling is how an admin revokes access: the Google callback rejects a
disabled account and the session dependency rejects its existing cookies.

Guard:
  An admin cannot disable or demote themselves. Since the acting admin always
  survives the change, the directory can never be left without an enabled admin.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import UserPatch, UserResponse
from auth.dependencies import require_admin
from auth.models import ROLE_ADMIN, User
from auth.store import UserStore

# Auth policy: every route requires admin (router-level dependency).
router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/users", response_model=list[UserResponse])
async def list_users(request: Request) -> list[UserResponse]:
    """List all user accounts."""
    user_store: UserStore = request.app.state.user_store
    return [_user_to_response(u) for u in user_store.list_users()]


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    """Update a user's role or disabled flag."""
    user_store: UserStore = request.app.state.user_store

    target = user_store.get_by_id(user_id)
    if target is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )

    updates: dict = {}
    if body.role is not None:
        updates["role"] = body.role.value
    if body.disabled is not None:
        updates["disabled"] = body.disabled
    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    loses_admin = target.role == ROLE_ADMIN and (
        updates.get("disabled") is True or updates.get("role", ROLE_ADMIN) != ROLE_ADMIN
    )
    if loses_admin and target.id == current_user.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_lockout", "message": "You cannot disable or demote your own account."},
        )

    return _user_to_response(user_store.update(user_id, **updates))


def _user_to_response(user: User | None) -> UserResponse:
    if user is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    return UserResponse(
        id=user.id,
        email=user.email,
        role=user.role,
        disabled=user.disabled,
        signup_at=user.signup_at,
        created_at=user.created_at or "",
    )
