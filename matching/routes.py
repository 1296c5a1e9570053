"""
Matching API Routes

Exposes the roommate matching engine via REST API.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from db import get_db
from utils.crud_matching import create_manual_assignment, set_assignment_status, submit_survey
from .logic.adapter import fetch_profile, fetch_profiles
from .logic.constants import ENGINE_VERSION
from .logic.contracts import Profile
from .logic.errors import BatchAborted, MatchingError, ProfileNotFound
from .logic.outcomes import (
    ALREADY_ASSIGNED,
    ASSIGNMENT_NOT_FOUND,
    DUPLICATE_SUBMISSION,
    INVALID_TRANSITION,
    NO_ROOM_AVAILABLE,
    PROFILE_NOT_FOUND,
    ROOM_NOT_FOUND,
)
from .logic.runner import (
    cohort_stats,
    explain,
    get_current_assignments,
    get_engine,
    get_top_matches,
    refresh_board,
    run_matching_for_cohort,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/matching", tags=["matching"])

# Failure reason -> HTTP status
FAILURE_STATUS = {
    DUPLICATE_SUBMISSION: 409,
    ALREADY_ASSIGNED: 409,
    INVALID_TRANSITION: 409,
    NO_ROOM_AVAILABLE: 409,
    ROOM_NOT_FOUND: 404,
    PROFILE_NOT_FOUND: 404,
    ASSIGNMENT_NOT_FOUND: 404,
}


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class ManualAssignmentRequest(BaseModel):
    """Request body for an admin-created assignment."""
    cohort_id: str = Field(..., min_length=1)
    room_id: str = Field(..., min_length=1)
    member_ids: List[str] = Field(..., min_length=1)
    notes: str = ""


class StatusUpdateRequest(BaseModel):
    status: str = Field(..., description="pending_approval | confirmed | rejected | completed")


def _raise_failure(outcome) -> None:
    raise HTTPException(
        status_code=FAILURE_STATUS.get(outcome.reason, 400),
        detail={"reason": outcome.reason, "details": outcome.details},
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/surveys", status_code=201, summary="Submit a compatibility survey")
def post_survey(payload: Dict[str, Any], db_session=Depends(get_db)):
    """
    Submit one profile's survey for a cohort.

    Malformed surveys are rejected with 400 before they reach the engine;
    a second submission for the same cohort returns 409.
    """
    try:
        profile = Profile.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid survey: {e.errors(include_url=False)}")

    db: Session
    with db_session as db:
        outcome = submit_survey(db, profile)
        if not outcome.ok:
            _raise_failure(outcome)
        logger.info(f"Survey stored for {profile.profile_id} in cohort {profile.cohort_id}")
        return {"profile_id": outcome.value, "cohort_id": profile.cohort_id}


@router.get("/cohorts/{cohort_id}/surveys", summary="List submitted surveys")
def list_surveys(cohort_id: str, db_session=Depends(get_db)):
    db: Session
    with db_session as db:
        profiles = fetch_profiles(db, cohort_id)
    return {
        "cohort_id": cohort_id,
        "surveys": [p.model_dump(mode="json") for p in profiles],
        "count": len(profiles),
    }


@router.get("/cohorts/{cohort_id}/surveys/{profile_id}", summary="Read back one survey")
def get_survey(cohort_id: str, profile_id: str, db_session=Depends(get_db)):
    db: Session
    with db_session as db:
        profile = fetch_profile(db, cohort_id, profile_id)
    if profile is None:
        raise HTTPException(status_code=404, detail=f"No survey for {profile_id} in cohort {cohort_id}")
    return profile.model_dump(mode="json")


@router.post("/cohorts/{cohort_id}/run", summary="Run matching for a cohort")
def run_cohort(cohort_id: str, db_session=Depends(get_db)):
    """
    Build the compatibility graph, match pairs and allocate rooms.

    Safe to retry: an unchanged cohort returns the stored result.
    """
    try:
        db: Session
        with db_session as db:
            output = run_matching_for_cohort(db, cohort_id)
            return output.model_dump(mode="json")
    except BatchAborted as e:
        logger.error(f"Matching run failed for cohort {cohort_id}: {e}")
        return JSONResponse(status_code=503, content={"error": str(e), "retryable": True})
    except MatchingError as e:
        logger.error(f"Matching run failed for cohort {cohort_id}: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})


@router.get("/cohorts/{cohort_id}/assignments", summary="Current assignments")
def list_assignments(cohort_id: str, db_session=Depends(get_db)):
    """Served from the in-process board; the store is only read on a cold board."""
    db: Session
    with db_session as db:
        current = get_current_assignments(cohort_id, db)
    return {
        "cohort_id": cohort_id,
        "assignments": [a.model_dump(mode="json") for a in current],
        "count": len(current),
    }


@router.get("/cohorts/{cohort_id}/stats", summary="Cohort compatibility statistics")
def get_stats(cohort_id: str, db_session=Depends(get_db)):
    db: Session
    with db_session as db:
        return cohort_stats(db, cohort_id).model_dump(mode="json")


@router.get("/cohorts/{cohort_id}/profiles/{profile_id}/top", summary="Top matches for a profile")
def top_matches(
    cohort_id: str,
    profile_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    db_session=Depends(get_db),
):
    db: Session
    with db_session as db:
        try:
            edges = get_top_matches(db, cohort_id, profile_id, limit)
        except ProfileNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))

    return {
        "profile_id": profile_id,
        "matches": [
            {
                "profile_id": edge.other(profile_id),
                "score": edge.overall_score,
                "category_scores": edge.category_scores,
                "reasons": edge.reasons,
                "warnings": edge.warnings,
            }
            for edge in edges
        ],
    }


@router.get("/cohorts/{cohort_id}/explain", summary="Explain a pair")
def explain_pair(
    cohort_id: str,
    a: str = Query(..., min_length=1),
    b: str = Query(..., min_length=1),
    db_session=Depends(get_db),
):
    """Reasons and warnings for a pair, or the violations that exclude it."""
    db: Session
    with db_session as db:
        try:
            outcome = explain(db, cohort_id, a, b)
        except ProfileNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))

    if not outcome.ok:
        return {"admissible": False, "profile_a": a, "profile_b": b, "violations": outcome.details}
    return {"admissible": True, **outcome.value.model_dump(mode="json")}


@router.post("/assignments", status_code=201, summary="Create a manual assignment")
def post_assignment(request: ManualAssignmentRequest, db_session=Depends(get_db)):
    db: Session
    with db_session as db:
        outcome = create_manual_assignment(
            db,
            cohort_id=request.cohort_id,
            room_id=request.room_id,
            member_ids=request.member_ids,
            notes=request.notes,
            max_retries=get_engine().policy.max_claim_retries,
            policy=get_engine().policy,
        )
        if not outcome.ok:
            _raise_failure(outcome)
        db.commit()
        refresh_board(db, request.cohort_id)
        return outcome.value.model_dump(mode="json")


@router.patch("/assignments/{assignment_id}", summary="Update assignment status")
def patch_assignment(assignment_id: str, request: StatusUpdateRequest, db_session=Depends(get_db)):
    db: Session
    with db_session as db:
        outcome = set_assignment_status(db, assignment_id, request.status)
        if not outcome.ok:
            _raise_failure(outcome)
        db.commit()
        refresh_board(db, outcome.value.cohort_id)
        return outcome.value.model_dump(mode="json")


# =============================================================================
# HEALTH CHECK
# =============================================================================

@router.get("/health", summary="Matching engine health check")
def health_check():
    """Check if matching engine is operational."""
    return {"status": "ok", "engine": "matching", "version": ENGINE_VERSION}
