"""
Tests for the matching HTTP routes.
"""

import pytest
from fastapi.testclient import TestClient

from db import get_db, session_scope
from main import app
from utils.crud_matching import create_room

from conftest import survey


@pytest.fixture
def client(session_factory):
    app.dependency_overrides[get_db] = lambda: session_scope(session_factory)
    with session_scope(session_factory) as db:
        create_room(db, room_id="r1", capacity=2, floor=0)
        create_room(db, room_id="r2", capacity=2, floor=1)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _submit_cohort(client, n=5):
    for i in range(1, n + 1):
        response = client.post("/matching/surveys", json=survey(f"p{i}"))
        assert response.status_code == 201


def test_health(client):
    response = client.get("/matching/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_submit_survey_and_reject_duplicate(client):
    assert client.post("/matching/surveys", json=survey("p1")).status_code == 201

    duplicate = client.post("/matching/surveys", json=survey("p1"))

    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["reason"] == "duplicate_submission"


def test_malformed_survey_is_rejected(client):
    payload = survey("p1")
    del payload["gender"]

    assert client.post("/matching/surveys", json=payload).status_code == 400


def test_run_and_list_assignments(client):
    _submit_cohort(client)

    run = client.post("/matching/cohorts/c1/run")
    assert run.status_code == 200
    body = run.json()
    assert len(body["assignments"]) == 2
    assert body["unmatched"] == ["p5"]

    again = client.post("/matching/cohorts/c1/run")
    assert again.json() == body

    listed = client.get("/matching/cohorts/c1/assignments").json()
    assert listed["count"] == 2
    assert {a["status"] for a in listed["assignments"]} == {"pending_approval"}


def test_status_workflow_over_http(client):
    _submit_cohort(client, n=2)
    assignment_id = client.post("/matching/cohorts/c1/run").json()["assignments"][0]["assignment_id"]

    confirmed = client.patch(f"/matching/assignments/{assignment_id}", json={"status": "confirmed"})
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"

    invalid = client.patch(f"/matching/assignments/{assignment_id}", json={"status": "rejected"})
    assert invalid.status_code == 409
    assert invalid.json()["detail"]["reason"] == "invalid_transition"

    assert client.patch("/matching/assignments/missing", json={"status": "confirmed"}).status_code == 404


def test_explain_and_top_matches(client):
    _submit_cohort(client, n=3)
    client.post("/matching/surveys", json=survey("p9", gender="male"))

    ok = client.get("/matching/cohorts/c1/explain", params={"a": "p1", "b": "p2"}).json()
    assert ok["admissible"] is True
    assert ok["overall_score"] == 100
    assert ok["reasons"]

    excluded = client.get("/matching/cohorts/c1/explain", params={"a": "p1", "b": "p9"}).json()
    assert excluded == {"admissible": False, "profile_a": "p1", "profile_b": "p9", "violations": ["different-gender"]}

    top = client.get("/matching/cohorts/c1/profiles/p1/top", params={"limit": 1}).json()
    assert [m["profile_id"] for m in top["matches"]] == ["p2"]

    assert client.get("/matching/cohorts/c1/profiles/ghost/top").status_code == 404


def test_manual_assignment_and_stats(client):
    _submit_cohort(client, n=2)

    created = client.post("/matching/assignments", json={"cohort_id": "c1", "room_id": "r2", "member_ids": ["p1", "p2"]})
    assert created.status_code == 201
    assert created.json()["source"] == "manual"
    assert created.json()["score"] == 100

    clash = client.post("/matching/assignments", json={"cohort_id": "c1", "room_id": "r1", "member_ids": ["p2"]})
    assert clash.status_code == 409

    stats = client.get("/matching/cohorts/c1/stats").json()
    assert stats["surveys"] == 2
    assert stats["rooms_assigned"] == 1
    assert stats["rooms_available"] == 1


def test_read_back_surveys(client):
    _submit_cohort(client, n=2)

    listed = client.get("/matching/cohorts/c1/surveys").json()
    assert listed["count"] == 2
    assert [s["profile_id"] for s in listed["surveys"]] == ["p1", "p2"]

    one = client.get("/matching/cohorts/c1/surveys/p2").json()
    assert one["profile_id"] == "p2"
    assert one["sleep"]["bedtime"] == "22:00:00"

    assert client.get("/matching/cohorts/c1/surveys/ghost").status_code == 404


def test_manual_assignment_for_unknown_profiles(client):
    _submit_cohort(client, n=1)

    response = client.post("/matching/assignments", json={"cohort_id": "c1", "room_id": "r1", "member_ids": ["p1", "ghost"]})

    assert response.status_code == 404
    assert response.json()["detail"] == {"reason": "profile_not_found", "details": ["ghost"]}
