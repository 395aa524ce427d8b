"""
api/routes/v1/cv.py -- CV document endpoints.

Routes (mounted under /api):
  GET    /cv                        -- all CVs, newest first (admin only)
  GET    /cv/search?keywords=a,b    -- keyword search (admin only)
  GET    /cv/{user_id}              -- one CV (owner or admin)
  PUT    /cv/{user_id}              -- create or replace a CV (owner or admin)
  DELETE /cv/{user_id}              -- delete a CV (owner or admin)
  POST   /cv/{user_id}/initialize   -- create an empty CV (owner or admin)

/cv/search is registered before /cv/{user_id}; otherwise "search" would be
captured as a user id.

Authorization is entirely in the dependencies: require_admin for the
collection routes, require_owner_or_admin("user_id") for per-user routes.
The handlers assume an authorized identity and only talk to CVStore.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from sqlalchemy.exc import IntegrityError

from api.models import CVListResponse, CVResponse, CVSearchMeta, MessageResponse
from auth.dependencies import require_admin, require_owner_or_admin
from auth.models import Identity
from auth.store import UserStore
from cv.store import CVStore, parse_keywords

logger = logging.getLogger("cvportal.cv")

router = APIRouter()

_owner_or_admin = require_owner_or_admin("user_id")


def _cv_store(request: Request) -> CVStore:
    return request.app.state.cv_store


def _require_target_user(request: Request, user_id: str) -> None:
    user_store: UserStore = request.app.state.user_store
    if user_store.get_by_id(user_id) is None:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "User not found."})


# ---------------------------------------------------------------------------
# Admin collection routes
# ---------------------------------------------------------------------------


@router.get("/cv", response_model=CVListResponse)
def list_cvs(
    identity: Identity = Depends(require_admin),
    store: CVStore = Depends(_cv_store),
) -> CVListResponse:
    """Return every CV, most recently updated first. Admin only."""
    return CVListResponse(data=store.list_all())


@router.get("/cv/search", response_model=CVListResponse)
def search_cvs(
    keywords: Optional[str] = Query(default=None, max_length=500),
    identity: Identity = Depends(require_admin),
    store: CVStore = Depends(_cv_store),
) -> CVListResponse:
    """Return CVs containing any of the comma-separated keywords. Admin only.

    Missing or blank keywords return every CV without search metadata.
    """
    terms = parse_keywords(keywords)
    if not terms:
        return CVListResponse(data=store.list_all())
    results = store.search(terms)
    return CVListResponse(
        data=results,
        meta=CVSearchMeta(search_keywords=terms, result_count=len(results)),
    )


# ---------------------------------------------------------------------------
# Per-user routes (owner or admin)
# ---------------------------------------------------------------------------


@router.get("/cv/{user_id}", response_model=CVResponse)
def get_cv(
    user_id: str,
    identity: Identity = Depends(_owner_or_admin),
    store: CVStore = Depends(_cv_store),
) -> CVResponse:
    record = store.get(user_id)
    if record is None:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "CV not found."})
    return CVResponse(data=record.data)


@router.put("/cv/{user_id}", response_model=CVResponse)
def save_cv(
    request: Request,
    user_id: str,
    body: dict[str, Any] = Body(...),
    identity: Identity = Depends(_owner_or_admin),
    store: CVStore = Depends(_cv_store),
) -> CVResponse:
    """Create or replace the CV for user_id. userId/updatedAt are set server-side."""
    _require_target_user(request, user_id)
    document = store.save(user_id, body)
    logger.info("CV saved for user_id=%s by %s", user_id, identity.id)
    return CVResponse(message="CV saved successfully.", data=document)


@router.delete("/cv/{user_id}", response_model=MessageResponse)
def delete_cv(
    user_id: str,
    identity: Identity = Depends(_owner_or_admin),
    store: CVStore = Depends(_cv_store),
) -> MessageResponse:
    if not store.delete(user_id):
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "CV not found."})
    logger.info("CV deleted for user_id=%s by %s", user_id, identity.id)
    return MessageResponse(message="CV deleted successfully.")


@router.post("/cv/{user_id}/initialize", response_model=CVResponse, status_code=201)
def initialize_cv(
    request: Request,
    user_id: str,
    identity: Identity = Depends(_owner_or_admin),
    store: CVStore = Depends(_cv_store),
) -> CVResponse:
    """Create an empty CV document. 400 if the user already has one."""
    _require_target_user(request, user_id)
    try:
        document = store.initialize(user_id)
    except IntegrityError:
        document = None
    if document is None:
        raise HTTPException(
            status_code=400,
            detail={"code": "cv_exists", "message": "A CV already exists for this user."},
        )
    return CVResponse(message="Empty CV created successfully.", data=document)
