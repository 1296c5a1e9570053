import logging
from typing import Iterable, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from matching.logic.adapter import (
    active_member_ids,
    assignment_to_contract,
    fetch_room,
    load_snapshot,
    survey_exists,
)
from matching.logic.allocator import assignment_id_for
from matching.logic.constants import MANUAL_SOURCE, AssignmentStatus
from matching.logic.contracts import Assignment, MatchingOutput, MatchingPolicy, Profile
from matching.logic.graph import score_group
from matching.logic.outcomes import (
    ALREADY_ASSIGNED,
    ASSIGNMENT_NOT_FOUND,
    DUPLICATE_SUBMISSION,
    NO_ROOM_AVAILABLE,
    PROFILE_NOT_FOUND,
    ROOM_NOT_FOUND,
    Failure,
    Outcome,
    Success,
)
from matching.logic.workflow import releases_seats, transition
from matching.models import (
    AssignmentMemberRecord,
    AssignmentRecord,
    MatchingRunRecord,
    RoomRecord,
    SurveyRecord,
)

logger = logging.getLogger(__name__)


def submit_survey(db: Session, profile: Profile) -> Outcome:
    """Store a validated survey; a second submission for the same cohort is rejected."""
    if survey_exists(db, profile.cohort_id, profile.profile_id):
        return Failure(reason=DUPLICATE_SUBMISSION, details=[profile.profile_id])

    db.add(SurveyRecord(
        cohort_id=profile.cohort_id,
        profile_id=profile.profile_id,
        gender=profile.gender,
        payload=profile.model_dump(mode="json"),
    ))
    try:
        db.flush()
    except IntegrityError:
        # Lost a race with a concurrent submission
        db.rollback()
        return Failure(reason=DUPLICATE_SUBMISSION, details=[profile.profile_id])
    return Success(value=profile.profile_id)


def create_room(
    db: Session,
    *,
    room_id: str,
    capacity: int,
    floor: int = 0,
    building: str = "",
    amenities: Iterable[str] = (),
    cohort_id: Optional[str] = None,
    occupancy: int = 0,
    is_available: bool = True,
) -> RoomRecord:
    room = RoomRecord(
        id=room_id,
        cohort_id=cohort_id,
        capacity=capacity,
        occupancy=occupancy,
        floor=floor,
        building=building,
        amenities=sorted(amenities),
        is_available=is_available,
        version=0,
    )
    db.add(room)
    db.flush()
    return room


def claim_room_seats(db: Session, room_id: str, seats: int, expected_version: int) -> bool:
    """
    Compare-and-swap seat claim.

    Succeeds only if nobody touched the room since expected_version was read
    and the seats still fit.
    """
    result = db.execute(
        update(RoomRecord)
        .where(
            RoomRecord.id == room_id,
            RoomRecord.version == expected_version,
            RoomRecord.is_available.is_(True),
            RoomRecord.occupancy + seats <= RoomRecord.capacity,
        )
        .values(occupancy=RoomRecord.occupancy + seats, version=RoomRecord.version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def release_room_seats(db: Session, room_id: str, seats: int) -> None:
    db.execute(
        update(RoomRecord)
        .where(RoomRecord.id == room_id)
        .values(occupancy=RoomRecord.occupancy - seats, version=RoomRecord.version + 1)
        .execution_options(synchronize_session=False)
    )


def claim_with_retry(db: Session, room_id: str, seats: int, max_retries: int) -> bool:
    """
    Claim seats, re-reading the room after each lost update.

    Returns False once the room no longer fits or retries run out.
    """
    for attempt in range(max_retries):
        room = fetch_room(db, room_id)
        if room is None or not room.is_available or room.remaining < seats:
            return False
        if claim_room_seats(db, room_id, seats, room.version):
            return True
        logger.debug(f"Lost seat claim on room {room_id} (attempt {attempt + 1}/{max_retries})")
    return False


def record_members(db: Session, assignment: Assignment) -> None:
    """
    Record one membership row per member.

    The unique (cohort_id, profile_id) constraint makes a second active
    assignment for the same profile fail at flush with IntegrityError.
    """
    for profile_id in assignment.member_ids:
        db.add(AssignmentMemberRecord(
            cohort_id=assignment.cohort_id,
            profile_id=profile_id,
            assignment_id=assignment.assignment_id,
        ))
    db.flush()


def save_assignment(db: Session, assignment: Assignment) -> AssignmentRecord:
    record = AssignmentRecord(
        id=assignment.assignment_id,
        cohort_id=assignment.cohort_id,
        room_id=assignment.room_id,
        member_ids=list(assignment.member_ids),
        score=assignment.score,
        status=AssignmentStatus(assignment.status).value,
        source=assignment.source,
        notes=assignment.notes,
    )
    db.add(record)
    record_members(db, assignment)
    return record


def create_manual_assignment(
    db: Session,
    *,
    cohort_id: str,
    room_id: str,
    member_ids: List[str],
    notes: str = "",
    max_retries: int = 3,
    policy: Optional[MatchingPolicy] = None,
) -> Outcome:
    """
    Admin override: place the given profiles in a room.

    Shares the seat claim and the one-active-assignment rule with the matcher.
    The stored score is the group's compatibility; an inadmissible group is
    still placed, with score 0 and its violations appended to the notes.
    """
    members = sorted(set(member_ids))
    if fetch_room(db, room_id) is None:
        return Failure(reason=ROOM_NOT_FOUND, details=[room_id])

    profiles = load_snapshot(db, cohort_id).by_id()
    missing = [m for m in members if m not in profiles]
    if missing:
        return Failure(reason=PROFILE_NOT_FOUND, details=missing)

    taken = sorted(active_member_ids(db, cohort_id) & set(members))
    if taken:
        return Failure(reason=ALREADY_ASSIGNED, details=taken)

    scored = score_group([profiles[m] for m in members], policy)
    if scored.ok:
        score = scored.value
    else:
        score = 0
        flagged = f"inadmissible: {', '.join(scored.details)}"
        notes = f"{notes}; {flagged}" if notes else flagged

    if not claim_with_retry(db, room_id, len(members), max_retries):
        return Failure(reason=NO_ROOM_AVAILABLE, details=[room_id])

    assignment = Assignment(
        assignment_id=assignment_id_for(cohort_id, members, MANUAL_SOURCE),
        cohort_id=cohort_id,
        room_id=room_id,
        member_ids=members,
        score=score,
        status=AssignmentStatus.PENDING_APPROVAL,
        source=MANUAL_SOURCE,
        notes=notes,
    )
    try:
        existing = db.get(AssignmentRecord, assignment.assignment_id)
        if existing is not None:
            # Same members re-placed after a rejection: reopen the row
            existing.room_id = room_id
            existing.score = score
            existing.status = AssignmentStatus.PENDING_APPROVAL.value
            existing.notes = notes
            record_members(db, assignment)
        else:
            save_assignment(db, assignment)
    except IntegrityError:
        # A concurrent writer placed one of the members first
        db.rollback()
        return Failure(reason=ALREADY_ASSIGNED, details=members)
    return Success(value=assignment)


def set_assignment_status(db: Session, assignment_id: str, status: str) -> Outcome:
    """Apply a workflow transition; a rejection gives the seats and members back."""
    record = db.get(AssignmentRecord, assignment_id)
    if record is None:
        return Failure(reason=ASSIGNMENT_NOT_FOUND, details=[assignment_id])

    outcome = transition(assignment_to_contract(record), status)
    if not outcome.ok:
        return outcome

    updated: Assignment = outcome.value
    record.status = updated.status.value
    if releases_seats(updated.status):
        release_room_seats(db, record.room_id, len(record.member_ids))
        db.execute(delete(AssignmentMemberRecord).where(AssignmentMemberRecord.assignment_id == assignment_id))
    db.flush()
    return Success(value=updated)


def save_run(db: Session, output: MatchingOutput) -> MatchingRunRecord:
    run = MatchingRunRecord(
        cohort_id=output.cohort_id,
        run_key=output.run_key,
        snapshot_fingerprint=output.snapshot_fingerprint,
        output=output.model_dump(mode="json"),
    )
    db.add(run)
    return run
