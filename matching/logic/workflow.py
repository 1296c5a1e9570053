"""
Assignment Status Workflow

PENDING_APPROVAL -> CONFIRMED | REJECTED
CONFIRMED        -> COMPLETED
REJECTED and COMPLETED are terminal.
"""

from typing import Union

from .constants import ALLOWED_TRANSITIONS, AssignmentStatus
from .contracts import Assignment
from .outcomes import Failure, INVALID_TRANSITION, Outcome, Success

StatusLike = Union[AssignmentStatus, str]


def as_status(value: StatusLike) -> AssignmentStatus:
    # Raises ValueError for strings that name no status
    return AssignmentStatus(value)


def can_transition(current: StatusLike, target: StatusLike) -> bool:
    return as_status(target) in ALLOWED_TRANSITIONS[as_status(current)]


def transition(assignment: Assignment, target: StatusLike) -> Outcome:
    """
    Move an assignment to a new status.

    Returns:
        Success(updated Assignment) or Failure("invalid_transition")
    """
    current = as_status(assignment.status)
    try:
        new_status = as_status(target)
    except ValueError:
        return Failure(reason=INVALID_TRANSITION, details=[f"unknown status '{target}'"])

    if not can_transition(current, new_status):
        return Failure(
            reason=INVALID_TRANSITION,
            details=[f"{current.value} -> {new_status.value}"],
        )
    return Success(value=assignment.model_copy(update={"status": new_status}))


def holds_members(status: StatusLike) -> bool:
    """Anything but a rejection keeps its members out of later matching runs."""
    return as_status(status) != AssignmentStatus.REJECTED


def releases_seats(status: StatusLike) -> bool:
    return as_status(status) == AssignmentStatus.REJECTED
