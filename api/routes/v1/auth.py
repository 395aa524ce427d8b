"""
api/routes/v1/auth.py -- Authentication, session, and user management endpoints.

Routes (mounted under /api):
  POST  /auth/register                 -- create account; returns user + token (201)
  POST  /auth/login                    -- password login; returns user + token
  POST  /auth/logout                   -- revoke the presenting session (requires auth)
  GET   /auth/profile                  -- current user (requires auth)
  POST  /auth/change-password          -- requires auth; revokes other sessions
  POST  /auth/reset-password           -- request a reset token (public, always 200)
  POST  /auth/reset-password/confirm   -- consume a reset token (public)
  GET   /auth/admin/users              -- list users (admin only)
  PATCH /auth/admin/users/{user_id}    -- change role / active flag (admin only)

Security:
  [H2] Credential endpoints are rate-limited per IP (AUTH_RATE_LIMIT).
  [C1] AuthService.login() provides timing equalization -- never inline
       get_by_email() + verify_password() here.
  [M4] PATCH blocks self-deactivation and removing the last active admin.
  [M5] Cache-Control: no-store on responses that carry a token.

Handlers are plain `def` so FastAPI runs them in the worker thread pool;
bcrypt and store calls never block the event loop. Auth failures are raised
as AuthError subclasses and rendered by the handler in api/main.py.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.limiter import auth_rate_limit, limiter
from api.models import (
    AuthData,
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    ProfileData,
    ProfileResponse,
    RegisterRequest,
    ResetPasswordConfirm,
    ResetPasswordRequest,
    UserListData,
    UserListResponse,
    UserPatch,
    UserResponse,
)
from auth.dependencies import get_auth_service, get_current_identity, require_admin
from auth.models import ROLE_ADMIN, AuthResult, Identity
from auth.service import AuthService

logger = logging.getLogger("cvportal.api.auth")

# Auth policy:
# - POST  /auth/register, /auth/login, /auth/reset-password[/confirm]: public
# - POST  /auth/logout, /auth/change-password, GET /auth/profile:   get_current_identity
# - GET   /auth/admin/users, PATCH /auth/admin/users/{user_id}:      require_admin
router = APIRouter()


def _auth_response(result: AuthResult, message: str) -> AuthResponse:
    return AuthResponse(
        message=message,
        data=AuthData(
            user=UserResponse.from_user(result.user),
            token=result.token,
            expires_at=result.expires_at,
        ),
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(auth_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(
    request: Request,
    response: Response,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Create a user account and return it with a bearer token."""
    result = service.register(body.email, body.password, body.name)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return _auth_response(result, "User created successfully.")


@limiter.limit(auth_rate_limit)  # [H2]
@router.post("/auth/login", response_model=AuthResponse)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Authenticate with email and password and open a new session.

    Unknown email and wrong password produce the same invalid_credentials
    error so the response does not reveal which emails are registered.
    """
    result = service.login(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return _auth_response(result, "Login successful.")


@limiter.limit(auth_rate_limit)  # [H2]
@router.post("/auth/reset-password", response_model=MessageResponse)
def request_password_reset(
    request: Request,
    body: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Send a reset token if the email is registered. Always returns 200."""
    return MessageResponse(message=service.request_password_reset(body.email))


@limiter.limit(auth_rate_limit)  # [H2]
@router.post("/auth/reset-password/confirm", response_model=MessageResponse)
def confirm_password_reset(
    request: Request,
    body: ResetPasswordConfirm,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Set a new password using a single-use reset token. Revokes all sessions."""
    service.reset_password(body.token, body.new_password)
    return MessageResponse(message="Password has been reset. Please log in again.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    identity: Identity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke the session that authorized this request. Other sessions stay valid."""
    service.logout(identity)
    return MessageResponse(message="Logout successful.")


@router.get("/auth/profile", response_model=ProfileResponse)
def profile(
    identity: Identity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    """Return the currently authenticated user."""
    user = service.users.get_by_id(identity.id)
    if user is None:
        # Deleted between verification and this read.
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "User not found."})
    return ProfileResponse(data=ProfileData(user=UserResponse.from_user(user)))


@router.post("/auth/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    identity: Identity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Change the caller's password. The current session stays valid; others are revoked."""
    service.change_password(identity, body.current_password, body.new_password)
    return MessageResponse(message="Password changed successfully.")


# ---------------------------------------------------------------------------
# User management (admin only)
# ---------------------------------------------------------------------------


@router.get("/auth/admin/users", response_model=UserListResponse)
def list_users(
    identity: Identity = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> UserListResponse:
    """List all user accounts. Admin only."""
    users = service.users.list_users()
    return UserListResponse(data=UserListData(users=[UserResponse.from_user(u) for u in users]))


@router.patch("/auth/admin/users/{user_id}", response_model=ProfileResponse)
def update_user(
    user_id: str,
    body: UserPatch,
    identity: Identity = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    """Update a user's role or active status. Admin only.

    [M4] Prevents:
      - Self-deactivation (admin accidentally locking themselves out).
      - Deactivating or demoting the last active admin.
    """
    users = service.users
    target = users.get_by_id(user_id)
    if target is None:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "User not found."})

    updates: dict = {}
    if body.role is not None and body.role.value != target.role:
        updates["role"] = body.role.value
    if body.is_active is not None and body.is_active != target.is_active:
        if not body.is_active and target.id == identity.id:
            raise HTTPException(
                status_code=400,
                detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
            )
        updates["is_active"] = body.is_active

    if not updates:
        raise HTTPException(status_code=400, detail={"code": "no_changes", "message": "No fields to update."})

    loses_admin = target.role == ROLE_ADMIN and target.is_active and (
        updates.get("role", ROLE_ADMIN) != ROLE_ADMIN or updates.get("is_active") is False
    )
    if loses_admin and users.count_active_admins() <= 1:
        raise HTTPException(
            status_code=400,
            detail={"code": "last_admin", "message": "Cannot remove the last active admin account."},
        )

    users.update_user(user_id, **updates)
    logger.info("User %s updated by admin %s: %s", user_id, identity.id, sorted(updates))
    updated = users.get_by_id(user_id)
    if updated is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    return ProfileResponse(message="User updated.", data=ProfileData(user=UserResponse.from_user(updated)))
