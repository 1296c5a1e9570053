"""
Matching Logic Module

Provides the deterministic compatibility engine for roommate matching.
"""

from .contracts import (
    Profile,
    CohortSnapshot,
    CompatibilityEdge,
    Explanation,
    MatchingOutput,
    MatchingPolicy,
    Room,
    Assignment,
    CohortStats,
    Gender,
)
from .engine import MatchingEngine, run_matching
from .cancellation import CancellationToken
from .constants import AssignmentStatus
from .outcomes import Success, Failure

__all__ = [
    # Main engine
    "MatchingEngine",
    "run_matching",
    "CancellationToken",

    # Contracts
    "Profile",
    "CohortSnapshot",
    "CompatibilityEdge",
    "Explanation",
    "MatchingOutput",
    "MatchingPolicy",
    "Room",
    "Assignment",
    "CohortStats",
    "Success",
    "Failure",

    # Enums
    "Gender",
    "AssignmentStatus",
]
