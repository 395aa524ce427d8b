"""
cv/models.py -- Domain dataclass and template for stored CVs.

The CV body is a free-form JSON document owned by the frontend form; the
backend only stamps userId/updatedAt and never validates individual sections.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

CV_SECTIONS = ("experience", "education", "skills", "languages", "certificates", "projects", "references")


@dataclass
class CVRecord:
    """One CV per user. user_id doubles as the primary key."""

    user_id: str
    data: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


def empty_cv(user_id: str) -> dict[str, Any]:
    """Return the blank CV document created by POST /cv/{user_id}/initialize."""
    cv: dict[str, Any] = {
        "userId": user_id,
        "personalInfo": {
            "firstName": "",
            "lastName": "",
            "email": "",
            "phone": "",
            "address": "",
            "summary": "",
        },
    }
    for section in CV_SECTIONS:
        cv[section] = []
    cv["updatedAt"] = datetime.now(timezone.utc).isoformat()
    return cv
