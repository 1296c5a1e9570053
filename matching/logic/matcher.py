"""
Greedy Matcher

Highest-score edges first, skipping any edge whose endpoint is already
taken. This is a greedy approximation of maximum-weight matching, not an
optimal solver.
"""

from typing import Iterable, List, Set

from .contracts import CompatibilityEdge, MatchedPair, MatchingResult


def rank_edges(edges: Iterable[CompatibilityEdge]) -> List[CompatibilityEdge]:
    """Score descending; the canonical (profile_a, profile_b) key breaks ties."""
    return sorted(edges, key=lambda e: (-e.overall_score, e.profile_a, e.profile_b))


def greedy_match(
    edges: Iterable[CompatibilityEdge],
    profile_ids: Iterable[str],
    min_score: int = 0,
) -> MatchingResult:
    """
    Build a disjoint set of pairs.

    Args:
        edges: Admissible compatibility edges
        profile_ids: Every node in the cohort, including isolated ones
        min_score: Edges scoring below this are never committed

    Returns:
        MatchingResult; profiles left without a partner are listed in
        unmatched (sorted) rather than dropped.
    """
    matched: Set[str] = set()
    pairs: List[MatchedPair] = []

    for edge in rank_edges(edges):
        if edge.overall_score < min_score:
            break
        if edge.profile_a in matched or edge.profile_b in matched:
            continue
        pairs.append(MatchedPair(
            profile_a=edge.profile_a,
            profile_b=edge.profile_b,
            score=edge.overall_score,
        ))
        matched.add(edge.profile_a)
        matched.add(edge.profile_b)

    unmatched = sorted(set(profile_ids) - matched)
    return MatchingResult(pairs=pairs, unmatched=unmatched)
