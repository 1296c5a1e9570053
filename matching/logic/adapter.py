"""
Data Adapter for the Matching Engine

Reads surveys, rooms, assignments and past runs from the matching tables and
transforms them into engine contracts.

This is a pure READ + TRANSFORM layer:
- NO scoring logic
- NO matching/allocation
- NO DB writes
"""

import logging
from typing import List, Optional, Set

from pydantic import ValidationError
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from matching.models import (
    AssignmentMemberRecord,
    AssignmentRecord,
    MatchingRunRecord,
    RoomRecord,
    SurveyRecord,
)

from .constants import AssignmentStatus
from .contracts import Assignment, CohortSnapshot, MatchingOutput, Profile, Room

logger = logging.getLogger(__name__)


# =============================================================================
# RECORD -> CONTRACT
# =============================================================================

def survey_to_profile(record: SurveyRecord) -> Optional[Profile]:
    """
    Rebuild a Profile from a stored survey payload.

    Returns None (and logs) for payloads that no longer validate, so one bad
    row cannot take down a whole cohort run.
    """
    try:
        return Profile.model_validate(record.payload)
    except ValidationError as e:
        logger.warning(f"Skipping invalid survey {record.profile_id} in cohort {record.cohort_id}: {e}")
        return None


def room_to_contract(record: RoomRecord) -> Room:
    return Room(
        room_id=record.id,
        capacity=record.capacity,
        occupancy=record.occupancy or 0,
        floor=record.floor or 0,
        building=record.building or "",
        amenities=tuple(sorted(record.amenities or [])),
        is_available=bool(record.is_available),
        version=record.version or 0,
    )


def assignment_to_contract(record: AssignmentRecord) -> Assignment:
    return Assignment(
        assignment_id=record.id,
        cohort_id=record.cohort_id,
        room_id=record.room_id,
        member_ids=list(record.member_ids or []),
        score=record.score or 0,
        status=AssignmentStatus(record.status),
        source=record.source,
        notes=record.notes or "",
    )


# =============================================================================
# QUERIES
# =============================================================================

def fetch_profiles(db: Session, cohort_id: str) -> List[Profile]:
    records = db.execute(
        select(SurveyRecord).where(SurveyRecord.cohort_id == cohort_id).order_by(SurveyRecord.profile_id)
    ).scalars().all()
    profiles = [survey_to_profile(r) for r in records]
    return [p for p in profiles if p is not None]


def fetch_profile(db: Session, cohort_id: str, profile_id: str) -> Optional[Profile]:
    record = db.execute(
        select(SurveyRecord).where(
            SurveyRecord.cohort_id == cohort_id,
            SurveyRecord.profile_id == profile_id,
        )
    ).scalar_one_or_none()
    return survey_to_profile(record) if record else None


def load_snapshot(db: Session, cohort_id: str, exclude: Optional[Set[str]] = None) -> CohortSnapshot:
    """Freeze the cohort's surveys, optionally leaving some profile ids out."""
    exclude = exclude or set()
    profiles = [p for p in fetch_profiles(db, cohort_id) if p.profile_id not in exclude]
    return CohortSnapshot.take(cohort_id, profiles)


def survey_exists(db: Session, cohort_id: str, profile_id: str) -> bool:
    return db.execute(
        select(SurveyRecord.id).where(
            SurveyRecord.cohort_id == cohort_id,
            SurveyRecord.profile_id == profile_id,
        )
    ).first() is not None


def fetch_rooms(db: Session, cohort_id: str) -> List[Room]:
    """Rooms open to the cohort (cohort-specific or shared), ordered by id."""
    records = db.execute(
        select(RoomRecord)
        .where(or_(RoomRecord.cohort_id == cohort_id, RoomRecord.cohort_id.is_(None)))
        .order_by(RoomRecord.id)
    ).scalars().all()
    return [room_to_contract(r) for r in records]


def fetch_room(db: Session, room_id: str) -> Optional[Room]:
    """Fresh read of one room, bypassing anything cached in the session."""
    record = db.execute(
        select(RoomRecord).where(RoomRecord.id == room_id).execution_options(populate_existing=True)
    ).scalar_one_or_none()
    return room_to_contract(record) if record else None


def fetch_assignments(db: Session, cohort_id: str) -> List[Assignment]:
    records = db.execute(
        select(AssignmentRecord)
        .where(AssignmentRecord.cohort_id == cohort_id)
        .order_by(AssignmentRecord.id)
    ).scalars().all()
    return [assignment_to_contract(r) for r in records]


def active_member_ids(db: Session, cohort_id: str) -> Set[str]:
    """Profiles already held by a non-rejected assignment in the cohort."""
    return set(db.execute(
        select(AssignmentMemberRecord.profile_id).where(AssignmentMemberRecord.cohort_id == cohort_id)
    ).scalars().all())


def rejected_assignment_ids(db: Session, cohort_id: str) -> List[str]:
    return sorted(
        a.assignment_id for a in fetch_assignments(db, cohort_id)
        if a.status == AssignmentStatus.REJECTED
    )


def find_run(db: Session, cohort_id: str, run_key: str) -> Optional[MatchingOutput]:
    """A previously committed run output for the same key, if any."""
    record = db.execute(
        select(MatchingRunRecord).where(
            MatchingRunRecord.cohort_id == cohort_id,
            MatchingRunRecord.run_key == run_key,
        )
    ).scalar_one_or_none()
    if record is None:
        return None
    return MatchingOutput.model_validate(record.output)
