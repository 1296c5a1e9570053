"""
Tests for the store-backed runner: atomic commit, idempotency, seat claims.
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from matching.logic import runner
from matching.logic.adapter import active_member_ids, fetch_assignments, fetch_rooms, load_snapshot
from matching.logic.cancellation import CancellationToken
from matching.logic.engine import MatchingEngine
from matching.logic.contracts import Assignment
from matching.logic.errors import BatchAborted, MatchingCancelled
from matching.models import AssignmentRecord, MatchingRunRecord, RoomRecord, SurveyRecord
from utils.crud_matching import (
    claim_room_seats,
    create_manual_assignment,
    create_room,
    save_assignment,
    set_assignment_status,
    submit_survey,
)

from conftest import make_profile


def _seed(db, n=5, rooms=("r1", "r2")):
    for i in range(1, n + 1):
        assert submit_survey(db, make_profile(f"p{i}")).ok
    for floor, room_id in enumerate(rooms):
        create_room(db, room_id=room_id, capacity=2, floor=floor)
    db.commit()


def _occupancy(db):
    db.expire_all()
    return {r.id: r.occupancy for r in db.execute(select(RoomRecord)).scalars()}


def test_duplicate_survey_is_rejected(db):
    assert submit_survey(db, make_profile("p1")).ok

    outcome = submit_survey(db, make_profile("p1"))

    assert not outcome.ok
    assert outcome.reason == "duplicate_submission"


def test_run_commits_assignments_and_claims_seats(db):
    _seed(db)

    output = runner.run_matching_for_cohort(db, "c1", engine=MatchingEngine())

    assert len(output.assignments) == 2
    assert output.unmatched == ["p5"]
    assert _occupancy(db) == {"r1": 2, "r2": 2}
    assert len(fetch_assignments(db, "c1")) == 2
    assert len(runner.get_current_assignments("c1")) == 2


def test_rerun_returns_stored_output(db):
    _seed(db)
    engine = MatchingEngine()

    first = runner.run_matching_for_cohort(db, "c1", engine=engine)
    second = runner.run_matching_for_cohort(db, "c1", engine=MatchingEngine())

    assert second.model_dump(mode="json") == first.model_dump(mode="json")
    assert len(fetch_assignments(db, "c1")) == 2
    assert len(db.execute(select(MatchingRunRecord)).all()) == 1
    assert _occupancy(db) == {"r1": 2, "r2": 2}


def test_new_survey_only_matches_unassigned_profiles(db):
    _seed(db, rooms=("r1", "r2", "r3"))
    runner.run_matching_for_cohort(db, "c1", engine=MatchingEngine())

    submit_survey(db, make_profile("p6"))
    db.commit()
    output = runner.run_matching_for_cohort(db, "c1", engine=MatchingEngine())

    assert [a.member_ids for a in output.assignments] == [["p5", "p6"]]
    assert len(fetch_assignments(db, "c1")) == 3


def test_rejection_frees_seats_for_the_next_run(db):
    _seed(db)
    first = runner.run_matching_for_cohort(db, "c1", engine=MatchingEngine())
    rejected = first.assignments[0]

    outcome = set_assignment_status(db, rejected.assignment_id, "rejected")
    db.commit()

    assert outcome.ok
    assert _occupancy(db)[rejected.room_id] == 0

    second = runner.run_matching_for_cohort(db, "c1", engine=MatchingEngine())

    assert second.run_key != first.run_key
    assert [a.member_ids for a in second.assignments] == [rejected.member_ids]
    assert second.assignments[0].assignment_id != rejected.assignment_id


def test_invalid_status_transition_is_tagged(db):
    _seed(db)
    output = runner.run_matching_for_cohort(db, "c1", engine=MatchingEngine())

    outcome = set_assignment_status(db, output.assignments[0].assignment_id, "completed")

    assert not outcome.ok
    assert outcome.reason == "invalid_transition"
    assert not set_assignment_status(db, "missing", "confirmed").ok


def test_lost_room_is_requeued_to_next_room(db):
    _seed(db, n=2)
    rooms = fetch_rooms(db, "c1")
    output = MatchingEngine().run(load_snapshot(db, "c1"), rooms)
    assert output.assignments[0].room_id == "r1"

    # Another batch fills r1 after the engine read it
    db.get(RoomRecord, "r1").occupancy = 2
    db.commit()

    final = runner.commit_batch(db, output, rooms)

    assert final.assignments[0].room_id == "r2"
    assert _occupancy(db) == {"r1": 2, "r2": 2}


def test_group_without_any_room_becomes_unresolved(db):
    _seed(db, n=2)
    rooms = fetch_rooms(db, "c1")
    output = MatchingEngine().run(load_snapshot(db, "c1"), rooms)

    for room in db.execute(select(RoomRecord)).scalars():
        room.is_available = False
    db.commit()

    final = runner.commit_batch(db, output, rooms)

    assert final.assignments == []
    assert final.unresolved[0].member_ids == ("p1", "p2")
    assert fetch_assignments(db, "c1") == []


def test_stale_version_loses_compare_and_swap(db):
    create_room(db, room_id="r1", capacity=4)
    db.commit()

    assert claim_room_seats(db, "r1", 2, expected_version=0)
    assert not claim_room_seats(db, "r1", 2, expected_version=0)
    assert claim_room_seats(db, "r1", 2, expected_version=1)
    assert not claim_room_seats(db, "r1", 1, expected_version=2)


def test_store_failure_rolls_back_everything(db, monkeypatch):
    _seed(db)

    def broken_save_run(*args, **kwargs):
        raise OperationalError("INSERT INTO matching_runs", {}, Exception("disk full"))

    monkeypatch.setattr(runner, "save_run", broken_save_run)

    with pytest.raises(BatchAborted):
        runner.run_matching_for_cohort(db, "c1", engine=MatchingEngine())

    assert fetch_assignments(db, "c1") == []
    assert _occupancy(db) == {"r1": 0, "r2": 0}
    assert len(db.execute(select(SurveyRecord)).all()) == 5


def test_cancelled_batch_commits_nothing(db):
    _seed(db)
    token = CancellationToken()
    token.cancel()

    with pytest.raises(MatchingCancelled):
        runner.run_matching_for_cohort(db, "c1", engine=MatchingEngine(), token=token)

    assert db.execute(select(AssignmentRecord)).first() is None
    assert _occupancy(db) == {"r1": 0, "r2": 0}


def test_manual_assignment_respects_active_members(db):
    _seed(db, rooms=("r1", "r2", "r3"))
    runner.run_matching_for_cohort(db, "c1", engine=MatchingEngine())

    taken = create_manual_assignment(db, cohort_id="c1", room_id="r3", member_ids=["p1", "p5"])
    assert not taken.ok
    assert taken.reason == "already_assigned"
    assert taken.details == ["p1"]

    placed = create_manual_assignment(db, cohort_id="c1", room_id="r3", member_ids=["p5"], notes="single")
    assert placed.ok
    assert placed.value.source == "manual"
    assert _occupancy(db)["r3"] == 1


def test_manual_assignment_needs_a_room_with_space(db):
    _seed(db, n=4, rooms=("r1",))

    assert create_manual_assignment(db, cohort_id="c1", room_id="nope", member_ids=["p1"]).reason == "room_not_found"
    assert create_manual_assignment(db, cohort_id="c1", room_id="r1", member_ids=["p1", "p2"]).ok
    full = create_manual_assignment(db, cohort_id="c1", room_id="r1", member_ids=["p3"])
    assert full.reason == "no_room_available"


def test_board_is_filled_from_store_when_cold(db):
    _seed(db)
    runner.run_matching_for_cohort(db, "c1", engine=MatchingEngine())
    runner.board.clear()

    assert runner.get_current_assignments("c1") == ()
    assert len(runner.get_current_assignments("c1", db)) == 2
    assert len(runner.get_current_assignments("c1")) == 2


def test_cohort_stats_counts_assigned_rooms(db):
    _seed(db, rooms=("r1", "r2", "r3"))
    runner.run_matching_for_cohort(db, "c1", engine=MatchingEngine())

    stats = runner.cohort_stats(db, "c1", engine=MatchingEngine())

    assert stats.surveys == 5
    assert stats.rooms_assigned == 2
    assert stats.rooms_available == 1


# =============================================================================
# ONE ACTIVE ASSIGNMENT PER PROFILE
# =============================================================================

def _active_assignments_for(db, profile_id):
    return [
        a for a in fetch_assignments(db, "c1")
        if profile_id in a.member_ids and a.status != "rejected"
    ]


def test_profile_placed_during_batch_is_not_assigned_twice(db):
    _seed(db, rooms=("r1", "r2", "r3"))
    rooms = fetch_rooms(db, "c1")
    output = MatchingEngine().run(load_snapshot(db, "c1"), rooms)
    assert output.assignments[0].member_ids == ["p1", "p2"]

    # An admin places p1 before the batch commits
    assert create_manual_assignment(db, cohort_id="c1", room_id="r3", member_ids=["p1"]).ok
    db.commit()

    final = runner.commit_batch(db, output, rooms)

    assert [a.member_ids for a in final.assignments] == [["p3", "p4"]]
    assert final.unmatched == ["p2", "p5"]
    assert [a.source for a in _active_assignments_for(db, "p1")] == ["manual"]
    assert _occupancy(db) == {"r1": 0, "r2": 2, "r3": 1}


def test_membership_race_aborts_the_whole_batch(db, monkeypatch):
    _seed(db, rooms=("r1", "r2", "r3"))
    rooms = fetch_rooms(db, "c1")
    output = MatchingEngine().run(load_snapshot(db, "c1"), rooms)
    assert create_manual_assignment(db, cohort_id="c1", room_id="r3", member_ids=["p1"]).ok
    db.commit()

    # The manual placement lands after the batch re-read the held members
    monkeypatch.setattr(runner, "active_member_ids", lambda db, cohort_id: set())

    with pytest.raises(BatchAborted):
        runner.commit_batch(db, output, rooms)

    assert len(_active_assignments_for(db, "p1")) == 1
    assert _occupancy(db) == {"r1": 0, "r2": 0, "r3": 1}


def test_store_rejects_a_second_active_assignment(db):
    _seed(db)
    runner.run_matching_for_cohort(db, "c1", engine=MatchingEngine())

    duplicate = Assignment(assignment_id="dup", cohort_id="c1", room_id="r1", member_ids=["p1", "p5"])

    with pytest.raises(IntegrityError):
        save_assignment(db, duplicate)
    db.rollback()


def test_rejection_releases_members(db):
    _seed(db)
    output = runner.run_matching_for_cohort(db, "c1", engine=MatchingEngine())
    assert {"p1", "p2"} <= active_member_ids(db, "c1")

    set_assignment_status(db, output.assignments[0].assignment_id, "rejected")
    db.commit()

    assert active_member_ids(db, "c1") == {"p3", "p4"}


# =============================================================================
# MANUAL ASSIGNMENT SCORING & VALIDATION
# =============================================================================

def test_manual_pair_stores_its_compatibility(db):
    _seed(db, n=2)

    outcome = create_manual_assignment(db, cohort_id="c1", room_id="r1", member_ids=["p2", "p1"])

    assert outcome.ok
    assert outcome.value.score == 100
    assert fetch_assignments(db, "c1")[0].score == 100


def test_manual_inadmissible_pair_is_flagged(db):
    _seed(db, n=1)
    submit_survey(db, make_profile("p9", gender="male"))
    db.commit()

    outcome = create_manual_assignment(db, cohort_id="c1", room_id="r1", member_ids=["p1", "p9"], notes="admin call")

    assert outcome.ok
    assert outcome.value.score == 0
    assert outcome.value.notes == "admin call; inadmissible: different-gender"


def test_manual_assignment_requires_surveys(db):
    _seed(db, n=2)

    outcome = create_manual_assignment(db, cohort_id="c1", room_id="r2", member_ids=["nobody", "ghost", "p1"])

    assert not outcome.ok
    assert outcome.reason == "profile_not_found"
    assert outcome.details == ["ghost", "nobody"]
    assert _occupancy(db) == {"r1": 0, "r2": 0}
