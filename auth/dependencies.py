"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_current_identity() is the session verifier gate: it hands the
Authorization header to AuthService.verify() and attaches the resulting
Identity to request.state.identity. Any failure propagates as an AuthError,
which api/main.py renders as a structured 401.

require_admin() and require_owner_or_admin() layer the authorization
policies (auth/policies.py) on top and raise 403 Forbidden.

All dependencies are plain `def` so FastAPI runs them (and their store
calls) in the worker thread pool rather than on the event loop.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system. No imports from api/ or cv/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.models import Identity
from auth.policies import check_admin, check_owner_or_admin
from auth.service import AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth


def get_current_identity(request: Request) -> Identity:
    """Require a valid bearer token backed by a live session.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    service: AuthService = request.app.state.auth
    identity = service.verify(request.headers.get("Authorization"))
    request.state.identity = identity
    return identity


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    """Require admin role. 401 if unauthenticated, 403 if not admin."""
    return check_admin(identity)


def require_owner_or_admin(param: str = "user_id") -> Callable[..., Identity]:
    """Build a dependency allowing the owner named by path parameter `param`, or any admin.

    Use as a FastAPI dependency:
        @router.get("/cv/{user_id}")
        def route(identity: Identity = Depends(require_owner_or_admin("user_id"))): ...
    """

    def dependency(request: Request, identity: Identity = Depends(get_current_identity)) -> Identity:
        return check_owner_or_admin(identity, request.path_params.get(param))

    return dependency
