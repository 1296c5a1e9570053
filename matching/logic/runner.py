"""
Matching Runner

Store-backed orchestration around the pure MatchingEngine:
1. Reads the cohort snapshot, rooms and assignments via the adapter
2. Returns a stored run unchanged when nothing relevant has changed
3. Runs the engine over the unassigned pool
4. Commits seat claims, assignments and the run record in one transaction
5. Publishes the committed assignments to the AssignmentBoard

No scoring or matching logic lives here.
"""

import hashlib
import logging
import threading
import time
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from utils.crud_matching import claim_with_retry, save_assignment, save_run

from .adapter import (
    active_member_ids,
    fetch_assignments,
    fetch_rooms,
    find_run,
    load_snapshot,
    rejected_assignment_ids,
)
from .allocator import fallback_rooms, order_rooms
from .cancellation import CancellationToken
from .contracts import (
    Assignment,
    CohortSnapshot,
    CohortStats,
    CompatibilityEdge,
    MatchedGroup,
    MatchingOutput,
    Room,
)
from .engine import MatchingEngine
from .errors import BatchAborted, MatchingCancelled
from .outcomes import Outcome
from .workflow import holds_members

logger = logging.getLogger(__name__)


# =============================================================================
# ASSIGNMENT BOARD
# =============================================================================

class AssignmentBoard:
    """
    Last committed assignments per cohort.

    Each cohort maps to an immutable tuple that is replaced wholesale after a
    commit, so readers never wait on a running batch.
    """

    def __init__(self):
        self._cohorts: Dict[str, Tuple[Assignment, ...]] = {}
        self._write_lock = threading.Lock()

    def publish(self, cohort_id: str, assignments: List[Assignment]) -> None:
        ordered = tuple(sorted(assignments, key=lambda a: a.assignment_id))
        with self._write_lock:
            cohorts = dict(self._cohorts)
            cohorts[cohort_id] = ordered
            self._cohorts = cohorts

    def get(self, cohort_id: str) -> Optional[Tuple[Assignment, ...]]:
        return self._cohorts.get(cohort_id)

    def clear(self) -> None:
        with self._write_lock:
            self._cohorts = {}


board = AssignmentBoard()

_engine: Optional[MatchingEngine] = None
_engine_lock = threading.Lock()


def get_engine() -> MatchingEngine:
    """Process-wide engine configured from the environment."""
    global _engine
    with _engine_lock:
        if _engine is None:
            from matching.config import load_policy
            _engine = MatchingEngine(load_policy())
        return _engine


def set_engine(engine: Optional[MatchingEngine]) -> None:
    global _engine
    with _engine_lock:
        _engine = engine


# =============================================================================
# HELPERS
# =============================================================================

def compute_run_key(cohort_fingerprint: str, rejected_ids: List[str]) -> str:
    """
    Idempotency key for a cohort run.

    Changes when a survey is added or when an assignment is rejected; a
    retry with neither returns the stored output.
    """
    payload = f"{cohort_fingerprint}|{','.join(sorted(rejected_ids))}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def held_assignments(db: Session, cohort_id: str) -> List[Assignment]:
    return [a for a in fetch_assignments(db, cohort_id) if holds_members(a.status)]


def refresh_board(db: Session, cohort_id: str) -> Tuple[Assignment, ...]:
    board.publish(cohort_id, held_assignments(db, cohort_id))
    return board.get(cohort_id)


# =============================================================================
# BATCH COMMIT
# =============================================================================

def commit_batch(
    db: Session,
    output: MatchingOutput,
    rooms: List[Room],
    max_retries: int = 3,
    token: Optional[CancellationToken] = None,
) -> MatchingOutput:
    """
    Claim seats and persist an engine output atomically.

    Each assignment claims its room with a compare-and-swap; when the room
    no longer fits, the group is requeued to the next room in priority
    order, and becomes unresolved when none fits. Groups with a member that
    was placed elsewhere since the snapshot are dropped and their other
    members reported as unmatched; the membership table rejects any such
    placement that lands after this check.

    Args:
        db: Database session
        output: Engine output to commit
        rooms: Rooms the output was computed against
        max_retries: Lost-update retries per room
        token: Optional cancellation token, checked before commit

    Returns:
        The committed output (room ids and unresolved groups reflect requeues)

    Raises:
        BatchAborted: store failure (including a lost membership race); nothing was committed
        MatchingCancelled: cancelled before commit; nothing was committed
    """
    ordered = order_rooms(rooms)
    committed: List[Assignment] = []
    unresolved: List[MatchedGroup] = []
    freed: Set[str] = set()

    try:
        # Members placed by a manual assignment or another batch since the snapshot
        taken = active_member_ids(db, output.cohort_id)
        for group in output.unresolved:
            if taken.intersection(group.member_ids):
                freed.update(m for m in group.member_ids if m not in taken)
            else:
                unresolved.append(group)

        for assignment in output.assignments:
            clashing = sorted(taken.intersection(assignment.member_ids))
            if clashing:
                logger.warning(f"⚠️ {clashing} already assigned elsewhere, dropping {assignment.assignment_id}")
                freed.update(m for m in assignment.member_ids if m not in taken)
                continue

            seats = len(assignment.member_ids)
            room_id = None
            for room in fallback_rooms(assignment.room_id, ordered):
                if claim_with_retry(db, room.room_id, seats, max_retries):
                    room_id = room.room_id
                    break

            if room_id is None:
                logger.warning(f"⚠️ No room left for {assignment.member_ids}, escalating")
                unresolved.append(MatchedGroup(member_ids=tuple(assignment.member_ids), score=assignment.score))
                continue

            if room_id != assignment.room_id:
                logger.info(f"🔁 Requeued {assignment.assignment_id} from {assignment.room_id} to {room_id}")
                assignment = assignment.model_copy(update={"room_id": room_id})

            save_assignment(db, assignment)
            committed.append(assignment)

        unmatched = sorted(freed.union(m for m in output.unmatched if m not in taken))
        final = output.model_copy(update={
            "assignments": committed,
            "unmatched": unmatched,
            "unresolved": unresolved,
            "stats": output.stats.model_copy(update={"assignments": len(committed)}),
        })

        if token is not None:
            token.raise_if_cancelled()

        save_run(db, final)
        db.commit()
    except MatchingCancelled:
        db.rollback()
        logger.info(f"🛑 Matching batch for cohort {output.cohort_id} cancelled, rolled back")
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Matching batch for cohort {output.cohort_id} aborted: {e}")
        raise BatchAborted(f"Matching batch for cohort {output.cohort_id} aborted") from e

    return final


# =============================================================================
# OPERATIONS
# =============================================================================

def run_matching_for_cohort(
    db: Session,
    cohort_id: str,
    engine: Optional[MatchingEngine] = None,
    token: Optional[CancellationToken] = None,
) -> MatchingOutput:
    """
    Main entry point: run and commit matching for a cohort.

    Args:
        db: Database session
        cohort_id: Cohort to match
        engine: Optional engine (defaults to the process-wide one)
        token: Optional cancellation token

    Returns:
        MatchingOutput; identical to the stored one when re-run unchanged
    """
    engine = engine or get_engine()
    start_time = time.perf_counter()

    logger.info(f"🚀 Starting matching run for cohort: {cohort_id}")

    cohort = load_snapshot(db, cohort_id)
    run_key = compute_run_key(cohort.fingerprint, rejected_assignment_ids(db, cohort_id))

    stored = find_run(db, cohort_id, run_key)
    if stored is not None:
        logger.info(f"♻️ Snapshot unchanged for cohort {cohort_id}, returning stored run")
        if board.get(cohort_id) is None:
            refresh_board(db, cohort_id)
        return stored

    taken = active_member_ids(db, cohort_id)
    pool = CohortSnapshot.take(cohort_id, [p for p in cohort.profiles if p.profile_id not in taken])
    rooms = fetch_rooms(db, cohort_id)
    logger.info(f"👥 Profiles in pool: {len(pool.profiles)} (already assigned: {len(taken)})")
    logger.info(f"🏠 Rooms considered: {len(rooms)}")

    if not pool.profiles:
        logger.warning(f"⚠️ No unassigned profiles in cohort {cohort_id}")

    output = engine.run(pool, rooms, token, run_key=run_key)
    logger.info(
        f"📊 Edges: {output.stats.admissible_edges} admissible, {output.stats.excluded_pairs} excluded; "
        f"pairs matched: {output.stats.pairs_matched}"
    )

    final = commit_batch(db, output, rooms, engine.policy.max_claim_retries, token)
    refresh_board(db, cohort_id)

    processing_time = (time.perf_counter() - start_time) * 1000
    logger.info(
        f"✨ Matching run complete for cohort {cohort_id}: {len(final.assignments)} assignment(s), "
        f"{len(final.unmatched)} unmatched, {len(final.unresolved)} unresolved ({processing_time:.2f}ms)"
    )
    return final


def get_top_matches(
    db: Session,
    cohort_id: str,
    profile_id: str,
    limit: Optional[int] = None,
    engine: Optional[MatchingEngine] = None,
) -> List[CompatibilityEdge]:
    engine = engine or get_engine()
    return engine.get_top_matches(load_snapshot(db, cohort_id), profile_id, limit)


def explain(
    db: Session,
    cohort_id: str,
    profile_id_a: str,
    profile_id_b: str,
    engine: Optional[MatchingEngine] = None,
) -> Outcome:
    engine = engine or get_engine()
    return engine.explain(load_snapshot(db, cohort_id), profile_id_a, profile_id_b)


def get_current_assignments(cohort_id: str, db: Optional[Session] = None) -> Tuple[Assignment, ...]:
    """
    Committed assignments for a cohort, served from the board.

    Falls back to one store read (then cached) when the board has never
    seen the cohort, e.g. after a restart.
    """
    current = board.get(cohort_id)
    if current is not None or db is None:
        return current or ()
    return refresh_board(db, cohort_id)


def cohort_stats(db: Session, cohort_id: str, engine: Optional[MatchingEngine] = None) -> CohortStats:
    engine = engine or get_engine()
    return engine.cohort_stats(
        load_snapshot(db, cohort_id),
        fetch_rooms(db, cohort_id),
        held_assignments(db, cohort_id),
    )
