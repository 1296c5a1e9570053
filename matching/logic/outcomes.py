"""
Tagged Outcomes

Success/Failure results for scoring and allocation steps. Callers branch on
``outcome.ok`` instead of catching exceptions for expected conditions.
"""

from typing import Any, List, Literal, Union
from pydantic import BaseModel, Field


class Success(BaseModel):
    """Successful step carrying the computed value."""
    ok: Literal[True] = True
    value: Any = None

    class Config:
        frozen = True
        arbitrary_types_allowed = True


class Failure(BaseModel):
    """Failed step carrying a machine-readable reason."""
    ok: Literal[False] = False
    reason: str
    details: List[str] = Field(default_factory=list)


Outcome = Union[Success, Failure]


# Reason codes
INADMISSIBLE = "inadmissible"
NO_ROOM_AVAILABLE = "no_room_available"
INVALID_TRANSITION = "invalid_transition"
DUPLICATE_SUBMISSION = "duplicate_submission"
ALREADY_ASSIGNED = "already_assigned"
ROOM_NOT_FOUND = "room_not_found"
ASSIGNMENT_NOT_FOUND = "assignment_not_found"
PROFILE_NOT_FOUND = "profile_not_found"
