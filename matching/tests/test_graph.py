"""
Tests for the compatibility graph builder.
"""

import pytest

from matching.logic.cancellation import CancellationToken
from matching.logic.contracts import CohortSnapshot, MatchingPolicy
from matching.logic.errors import MatchingCancelled, ProfileNotFound, SnapshotError
from matching.logic.graph import CompatibilityGraph, evaluate_pair, score_group

from conftest import make_profile


def _snapshot(*profiles):
    return CohortSnapshot.take("c1", profiles)


def test_deal_breaker_pair_has_no_edge():
    p3 = make_profile("p3", deal_breakers=["smoking"])
    p4 = make_profile("p4", lifestyle={"smoking_tolerance": "high"})
    p5 = make_profile("p5")

    graph = CompatibilityGraph.build(_snapshot(p3, p4, p5))

    assert graph.edge("p3", "p4") is None
    assert graph.edge("p4", "p3") is None
    assert graph.exclusion("p4", "p3") == ["p3:smoking"]
    assert graph.edge_count == 2
    assert graph.excluded_count == 1


def test_evaluate_pair_returns_tagged_failure():
    outcome = evaluate_pair(make_profile("a"), make_profile("b", gender="male"))

    assert not outcome.ok
    assert outcome.reason == "inadmissible"
    assert outcome.details == ["different-gender"]


def test_policy_off_admits_mixed_gender_pairs():
    outcome = evaluate_pair(
        make_profile("a"),
        make_profile("b", gender="male"),
        MatchingPolicy(require_same_gender=False),
    )
    assert outcome.ok


def test_edges_are_canonical_and_sorted():
    graph = CompatibilityGraph.build(_snapshot(make_profile("c"), make_profile("a"), make_profile("b")))

    keys = [edge.key for edge in graph.edges()]
    assert keys == [("a", "b"), ("a", "c"), ("b", "c")]


def test_incremental_add_matches_full_build():
    profiles = [
        make_profile("a"),
        make_profile("b", sleep={"bedtime": "23:30"}),
        make_profile("c", cleanliness={"cleanliness_level": 3}),
    ]
    full = CompatibilityGraph.build(_snapshot(*profiles))

    partial = CompatibilityGraph.build(_snapshot(*profiles[:2]))
    partial.add_profile(profiles[2])

    assert [e.model_dump() for e in partial.edges()] == [e.model_dump() for e in full.edges()]


def test_duplicate_profile_is_rejected():
    graph = CompatibilityGraph("c1")
    graph.add_profile(make_profile("a"))

    with pytest.raises(SnapshotError):
        graph.add_profile(make_profile("a"))

    with pytest.raises(SnapshotError):
        _snapshot(make_profile("a"), make_profile("a"))


def test_foreign_cohort_profile_is_rejected():
    graph = CompatibilityGraph("c1")
    with pytest.raises(SnapshotError):
        graph.add_profile(make_profile("a", cohort_id="c2"))


def test_remove_profile_drops_its_edges():
    graph = CompatibilityGraph.build(_snapshot(make_profile("a"), make_profile("b"), make_profile("c")))

    graph.remove_profile("b")

    assert graph.profile_ids == ["a", "c"]
    assert [e.key for e in graph.edges()] == [("a", "c")]


def test_copy_is_independent():
    graph = CompatibilityGraph.build(_snapshot(make_profile("a"), make_profile("b")))
    clone = graph.copy()
    clone.add_profile(make_profile("c"))

    assert graph.edge_count == 1
    assert clone.edge_count == 3


def test_top_matches_orders_by_score_then_partner():
    graph = CompatibilityGraph.build(_snapshot(
        make_profile("a"),
        make_profile("d"),
        make_profile("c"),
        make_profile("b", cleanliness={"cleanliness_level": 2}),
    ))

    top = graph.top_matches("a", limit=3)

    assert [e.other("a") for e in top] == ["c", "d", "b"]
    assert top[0].overall_score >= top[-1].overall_score


def test_top_matches_unknown_profile():
    graph = CompatibilityGraph.build(_snapshot(make_profile("a")))
    with pytest.raises(ProfileNotFound):
        graph.top_matches("zzz")


def test_cancelled_token_stops_build():
    token = CancellationToken()
    token.cancel()

    with pytest.raises(MatchingCancelled):
        CompatibilityGraph.build(_snapshot(make_profile("a"), make_profile("b")), token=token)


def test_edges_carry_reasons_and_warnings():
    graph = CompatibilityGraph.build(_snapshot(
        make_profile("a"),
        make_profile("b", lifestyle={"food_preference": "non_vegetarian"}),
    ))
    edge = graph.edge("a", "b")

    assert "Conflicting food preferences" in edge.warnings
    assert any(r.startswith("Similar cleanliness standards") for r in edge.reasons)


def test_score_group_averages_pairs():
    a, b = make_profile("a"), make_profile("b", sleep={"bedtime": "01:30"})
    pair = evaluate_pair(a, b).value.overall_score

    assert score_group([a, b]).value == pair
    assert score_group([a]).value == 0


def test_score_group_collects_violations():
    outcome = score_group([
        make_profile("a"),
        make_profile("b"),
        make_profile("c", gender="male"),
    ])

    assert not outcome.ok
    assert outcome.details == ["different-gender", "different-gender"]
