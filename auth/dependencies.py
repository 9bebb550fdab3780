"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two ways to present the session JWT, checked in priority order:
  1. "access_token" cookie -- set by the Google sign-in callback.
  2. Authorization: Bearer <token> header -- API clients.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_user() and raises HTTP 403 if not admin.

A token for a user who has since been disabled or deleted is rejected -- the
directory is consulted on every request, not just at sign-in.

Layer rule: may import fastapi (part of the DI system). No imports from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import ROLE_ADMIN, User
from auth.tokens import COOKIE_NAME, decode_access_token


def try_get_current_user(request: Request) -> User | None:
    """Attempt to authenticate the request via cookie or Bearer header.

    Returns the authenticated User on success, None on any failure.
    """
    user_store = request.app.state.user_store

    token: str | None = request.cookies.get(COOKIE_NAME)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    if not token:
        return None

    payload = decode_access_token(token)
    if payload is None:
        return None
    user = user_store.get_by_id(payload["user_id"])
    if user is None or user.disabled:
        return None
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated."""
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def require_admin(request: Request) -> User:
    """Require admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    user = get_current_user(request)
    if user.role != ROLE_ADMIN:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return user
