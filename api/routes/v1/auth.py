"""
api/routes/v1/auth.py -- Authentication and user management REST endpoints.

Routes:
  POST /api/v1/auth/login                -- password login; sets JWT cookie
  POST /api/v1/auth/logout               -- clears cookie; 200
  GET  /api/v1/auth/me                   -- current user info (requires auth)
  GET  /api/v1/auth/users/{id}/profile   -- display name + avatar (requires auth)
  POST /api/v1/auth/users                -- create user (admin only)
  GET  /api/v1/auth/users                -- list all users (admin only)

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on login responses.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, MeResponse, UserCreate, UserProfileResponse, UserResponse
from auth.dependencies import get_current_user, require_admin
from auth.models import User
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password, set_auth_cookie
from core.config import get_settings

_settings = get_settings()


def _login_limit() -> str:
    return get_settings().login_rate_limit


router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(_login_limit)  # must sit BELOW @router so FastAPI registers the limited function
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; set JWT cookie.

    Returns the same generic error for wrong username and wrong password
    ("bad_credentials") to avoid leaking username existence information.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.username, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid username or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = create_access_token(user.id, user.username, user.role)
    user_store.update_last_login(user.id)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            username=user.username,
            role=user.role,
        ).model_dump(),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie("access_token")
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(
        user_id=current_user.id,
        username=current_user.username,
        role=current_user.role,
        full_name=current_user.full_name,
    )


@router.get("/auth/users/{user_id}/profile", response_model=UserProfileResponse)
def user_profile(
    request: Request,
    user_id: str,
    current_user: User = Depends(get_current_user),
) -> UserProfileResponse:
    """Return the display identity of a user (auditor name and avatar on the scan screen)."""
    profile = request.app.state.lookup.get_auditor(user_id)
    if profile is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return UserProfileResponse(
        user_id=profile.auditor_id,
        display_name=profile.display_name,
        avatar_url=profile.avatar_url,
    )


# ---------------------------------------------------------------------------
# User management (admin only)
# ---------------------------------------------------------------------------


@router.post("/auth/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    """Create a new user account. Admin only."""
    user_store: UserStore = request.app.state.user_store
    new_user = User(
        username=body.username,
        role=body.role.value,
        hashed_password=hash_password(body.password),
        full_name=body.full_name,
        avatar_url=body.avatar_url,
    )
    try:
        user_id = user_store.create_user(new_user)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that username already exists."},
        ) from exc
    return _user_to_response(user_store.get_by_id(user_id))


@router.get("/auth/users", response_model=list[UserResponse])
def list_users(
    request: Request,
    current_user: User = Depends(require_admin),
) -> list[UserResponse]:
    """List all user accounts. Admin only."""
    user_store: UserStore = request.app.state.user_store
    return [_user_to_response(u) for u in user_store.list_users()]


def _user_to_response(user: User | None) -> UserResponse:
    if user is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    return UserResponse(
        id=user.id,
        username=user.username,
        role=user.role,
        full_name=user.full_name,
        is_active=user.is_active,
        created_at=user.created_at or "",
    )
