"""
Compatibility Graph

Nodes are profiles of one cohort; edges are admissible scored pairs.
Inadmissible pairs (policy or deal-breaker) are counted but never stored as
edges. Supports incremental extension so a late submission only costs the
n-1 pairs that touch it.
"""

from itertools import combinations
from typing import Dict, List, Optional, Tuple

from .cancellation import CancellationToken
from .contracts import CohortSnapshot, CompatibilityEdge, MatchingPolicy, Profile
from .deal_breakers import check_deal_breakers
from .errors import ProfileNotFound, SnapshotError
from .explainer import build_reasons, build_warnings
from .outcomes import Failure, INADMISSIBLE, Outcome, Success
from .scorer import score_pair


def evaluate_pair(a: Profile, b: Profile, policy: Optional[MatchingPolicy] = None) -> Outcome:
    """
    Filter and score one pair.

    Returns:
        Success(CompatibilityEdge) for an admissible pair, otherwise
        Failure("inadmissible") with the policy and deal-breaker violations.
    """
    policy = policy or MatchingPolicy()
    if a.profile_id == b.profile_id:
        raise SnapshotError(f"Cannot pair profile {a.profile_id} with itself")

    check = check_deal_breakers(a, b)
    scored = score_pair(a, b, require_same_gender=policy.require_same_gender)

    violations = scored.policy_violations + check.violations
    if violations:
        return Failure(reason=INADMISSIBLE, details=violations)

    edge = CompatibilityEdge(
        profile_a=scored.profile_a,
        profile_b=scored.profile_b,
        overall_score=scored.overall_score,
        category_scores=scored.category_scores,
        contributions=scored.contributions,
    )
    edge.reasons = build_reasons(edge)
    edge.warnings = build_warnings(edge)
    return Success(value=edge)


def score_group(profiles: List[Profile], policy: Optional[MatchingPolicy] = None) -> Outcome:
    """
    Compatibility of a hand-picked group: the mean of its pair scores.

    Returns:
        Success(int score) when every pair is admissible (0 for a single
        profile), otherwise Failure("inadmissible") with all violations.
    """
    scores: List[int] = []
    violations: List[str] = []
    for a, b in combinations(profiles, 2):
        outcome = evaluate_pair(a, b, policy)
        if outcome.ok:
            scores.append(outcome.value.overall_score)
        else:
            violations.extend(outcome.details)

    if violations:
        return Failure(reason=INADMISSIBLE, details=violations)
    return Success(value=round(sum(scores) / len(scores)) if scores else 0)


def _key(a: str, b: str) -> Tuple[str, str]:
    return (a, b) if a <= b else (b, a)


class CompatibilityGraph:
    """Admissible edges for one cohort, keyed by canonical (profile_a, profile_b)."""

    def __init__(self, cohort_id: str, policy: Optional[MatchingPolicy] = None):
        self.cohort_id = cohort_id
        self.policy = policy or MatchingPolicy()
        self._profiles: Dict[str, Profile] = {}
        self._edges: Dict[Tuple[str, str], CompatibilityEdge] = {}
        self._excluded: Dict[Tuple[str, str], List[str]] = {}

    @classmethod
    def build(
        cls,
        snapshot: CohortSnapshot,
        policy: Optional[MatchingPolicy] = None,
        token: Optional[CancellationToken] = None,
    ) -> "CompatibilityGraph":
        """Evaluate all C(n, 2) pairs of a snapshot."""
        graph = cls(snapshot.cohort_id, policy)
        for profile in snapshot.profiles:
            graph.add_profile(profile, token)
        return graph

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def add_profile(self, profile: Profile, token: Optional[CancellationToken] = None) -> None:
        """
        Add a node and evaluate only the pairs touching it.

        Raises:
            SnapshotError: duplicate id or profile from another cohort
            MatchingCancelled: token cancelled mid-evaluation
        """
        if profile.cohort_id != self.cohort_id:
            raise SnapshotError(
                f"Profile {profile.profile_id} belongs to cohort {profile.cohort_id}, not {self.cohort_id}"
            )
        if profile.profile_id in self._profiles:
            raise SnapshotError(f"Duplicate profile id in graph: {profile.profile_id}")

        for other_id in sorted(self._profiles):
            if token is not None:
                token.raise_if_cancelled()
            outcome = evaluate_pair(profile, self._profiles[other_id], self.policy)
            key = _key(profile.profile_id, other_id)
            if outcome.ok:
                self._edges[key] = outcome.value
            else:
                self._excluded[key] = outcome.details

        self._profiles[profile.profile_id] = profile

    def remove_profile(self, profile_id: str) -> None:
        if profile_id not in self._profiles:
            raise ProfileNotFound(profile_id, self.cohort_id)
        del self._profiles[profile_id]
        self._edges = {k: e for k, e in self._edges.items() if profile_id not in k}
        self._excluded = {k: v for k, v in self._excluded.items() if profile_id not in k}

    def copy(self) -> "CompatibilityGraph":
        """Shallow copy; edges and profiles are immutable so they are shared."""
        clone = CompatibilityGraph(self.cohort_id, self.policy)
        clone._profiles = dict(self._profiles)
        clone._edges = dict(self._edges)
        clone._excluded = dict(self._excluded)
        return clone

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def profile_ids(self) -> List[str]:
        return sorted(self._profiles)

    def profile(self, profile_id: str) -> Profile:
        try:
            return self._profiles[profile_id]
        except KeyError:
            raise ProfileNotFound(profile_id, self.cohort_id) from None

    def has_profile(self, profile_id: str) -> bool:
        return profile_id in self._profiles

    def edges(self) -> List[CompatibilityEdge]:
        return [self._edges[key] for key in sorted(self._edges)]

    def edge(self, a: str, b: str) -> Optional[CompatibilityEdge]:
        return self._edges.get(_key(a, b))

    def exclusion(self, a: str, b: str) -> Optional[List[str]]:
        """Violations recorded for an excluded pair, or None if not excluded."""
        return self._excluded.get(_key(a, b))

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    @property
    def excluded_count(self) -> int:
        return len(self._excluded)

    def top_matches(self, profile_id: str, limit: int = 10) -> List[CompatibilityEdge]:
        """
        A node's admissible edges, best first.

        Ties on score are broken by partner id.
        """
        if profile_id not in self._profiles:
            raise ProfileNotFound(profile_id, self.cohort_id)
        incident = [e for key, e in self._edges.items() if profile_id in key]
        incident.sort(key=lambda e: (-e.overall_score, e.other(profile_id)))
        return incident[:limit]
