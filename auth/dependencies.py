"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two auth methods are checked in priority order:
  1. JWT cookie ("access_token") -- browser sessions.
  2. Authorization: Bearer <token> header -- the CLI, scanner kiosks, scripts.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_roles(...) builds a dependency that raises HTTP 403 for other roles.

Layer rule: no imports from grants/, directory/, or client/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import HTTPException, Request

from auth.models import User
from auth.tokens import decode_access_token


def try_get_current_user(request: Request) -> User | None:
    """Attempt to authenticate the request via cookie or Bearer header. Never raises."""
    user_store = request.app.state.user_store

    token: str | None = request.cookies.get("access_token")
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]

    if token:
        payload = decode_access_token(token)
        if payload:
            user = user_store.get_by_id(payload["user_id"])
            if user and user.is_active:
                return user
    return None


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def require_roles(*roles: str) -> Callable[[Request], User]:
    """Return a dependency that admits only users holding one of `roles`.

    Use as a FastAPI dependency:
        @router.post("/access-grants/issue")
        def route(user: User = Depends(require_roles("admin", "lead_auditor"))): ...
    """

    def dependency(request: Request) -> User:
        user = get_current_user(request)
        if user.role not in roles:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"Requires role: {' or '.join(roles)}."},
            )
        return user

    return dependency


def require_admin(request: Request) -> User:
    """Require admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    return require_roles("admin")(request)
