"""
Matching Errors

Exceptions for exceptional flow only. Expected business conditions
(inadmissible pair, no room available, invalid transition, duplicate
submission) are returned as Success/Failure outcomes instead.
"""


class MatchingError(Exception):
    """Base class for matching engine errors."""


class SnapshotError(MatchingError):
    """A cohort snapshot is malformed (duplicate ids, mixed cohorts)."""


class ProfileNotFound(MatchingError):
    """A profile id is not part of the cohort snapshot."""

    def __init__(self, profile_id: str, cohort_id: str = ""):
        self.profile_id = profile_id
        self.cohort_id = cohort_id
        where = f" in cohort {cohort_id}" if cohort_id else ""
        super().__init__(f"Profile {profile_id} not found{where}")


class MatchingCancelled(MatchingError):
    """A batch was cancelled cooperatively before commit."""


class BatchAborted(MatchingError):
    """A batch failed mid-run; nothing was committed."""
