"""
auth/policies.py -- Authorization predicates applied after authentication.

Both checks are stateless and framework-free; auth/dependencies.py wraps
them as FastAPI dependencies. They fail closed: a missing identity is
treated as unauthenticated even though the dependency ordering should make
that unreachable.

Layer rule: no imports from api/ or cv/.
"""

from __future__ import annotations

from auth.errors import Forbidden, MissingToken
from auth.models import Identity


def check_admin(identity: Identity | None) -> Identity:
    """Pass iff the identity holds the admin role."""
    if identity is None:
        raise MissingToken("Authentication required.")
    if not identity.is_admin:
        raise Forbidden("Admin access required.")
    return identity


def check_owner_or_admin(identity: Identity | None, owner_id: str | None) -> Identity:
    """Pass iff the identity is an admin or is the resource owner."""
    if identity is None:
        raise MissingToken("Authentication required.")
    if identity.is_admin:
        return identity
    if owner_id is not None and identity.id == owner_id:
        return identity
    raise Forbidden()
