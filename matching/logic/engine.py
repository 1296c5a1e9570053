"""
Matching Engine

Pure orchestrator over a frozen cohort snapshot. Nothing here touches the
database; the runner feeds snapshots in and persists what comes out.

Pipeline flow:
1. Graph Build - Deal-breaker filter + scorer over every pair
2. Matching - Greedy disjoint pairs above the score floor
3. Allocation - Matched pairs into rooms by priority
4. Output Assembly - Deterministic MatchingOutput
"""

import logging
import threading
from collections import Counter
from typing import Dict, Iterable, List, Optional, Tuple

from .allocator import allocate_rooms
from .cancellation import CancellationToken
from .constants import ENGINE_VERSION, HIGH_COMPATIBILITY_SCORE, LOW_COMPATIBILITY_SCORE
from .contracts import (
    Assignment,
    CohortSnapshot,
    CohortStats,
    CompatibilityEdge,
    MatchedGroup,
    MatchingOutput,
    MatchingPolicy,
    Room,
    RunStats,
)
from .explainer import explain_edge
from .graph import CompatibilityGraph
from .matcher import greedy_match
from .outcomes import Failure, INADMISSIBLE, Outcome, Success

logger = logging.getLogger(__name__)


class MatchingEngine:
    """
    Main matching engine.

    Graphs are cached per cohort. A cached graph is never mutated in place:
    a changed snapshot gets a copy extended with only the new or changed
    profiles, then the cache entry is swapped.
    """

    def __init__(self, policy: Optional[MatchingPolicy] = None):
        self.policy = policy or MatchingPolicy()
        self.version = ENGINE_VERSION
        self._graphs: Dict[str, Tuple[str, CompatibilityGraph]] = {}
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Graph cache
    # -------------------------------------------------------------------------

    def graph_for(
        self,
        snapshot: CohortSnapshot,
        token: Optional[CancellationToken] = None,
    ) -> CompatibilityGraph:
        """Return the compatibility graph for a snapshot, reusing cached work."""
        fingerprint = snapshot.fingerprint
        with self._lock:
            cached = self._graphs.get(snapshot.cohort_id)

        if cached is not None and cached[0] == fingerprint:
            return cached[1]

        if cached is None:
            graph = CompatibilityGraph.build(snapshot, self.policy, token)
        else:
            graph = self._extend(cached[1], snapshot, token)

        with self._lock:
            self._graphs[snapshot.cohort_id] = (fingerprint, graph)
        return graph

    def _extend(
        self,
        cached: CompatibilityGraph,
        snapshot: CohortSnapshot,
        token: Optional[CancellationToken],
    ) -> CompatibilityGraph:
        graph = cached.copy()
        current = snapshot.by_id()

        for profile_id in graph.profile_ids:
            if current.get(profile_id) != graph.profile(profile_id):
                graph.remove_profile(profile_id)

        added = 0
        for profile in snapshot.profiles:
            if not graph.has_profile(profile.profile_id):
                graph.add_profile(profile, token)
                added += 1

        logger.debug(f"Extended cached graph for cohort {snapshot.cohort_id} with {added} profile(s)")
        return graph

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def run(
        self,
        snapshot: CohortSnapshot,
        rooms: Iterable[Room],
        token: Optional[CancellationToken] = None,
        run_key: Optional[str] = None,
    ) -> MatchingOutput:
        """
        Run Graph -> Match -> Allocate over a snapshot.

        Args:
            snapshot: Frozen cohort profiles to match
            rooms: Rooms with their current occupancy
            token: Optional cancellation token
            run_key: Idempotency key for the run; defaults to the snapshot fingerprint

        Returns:
            MatchingOutput with assignments, unmatched profiles and unresolved groups

        Raises:
            MatchingCancelled: if the token is cancelled before the output is built
        """
        graph = self.graph_for(snapshot, token)
        edges = graph.edges()

        matching = greedy_match(edges, graph.profile_ids, self.policy.min_pair_score)
        if token is not None:
            token.raise_if_cancelled()

        groups = [MatchedGroup.from_pair(pair) for pair in matching.pairs]
        run_key = run_key or snapshot.fingerprint
        allocation = allocate_rooms(snapshot.cohort_id, groups, rooms, snapshot.by_id(), id_salt=run_key)
        if token is not None:
            token.raise_if_cancelled()

        return MatchingOutput(
            cohort_id=snapshot.cohort_id,
            snapshot_fingerprint=snapshot.fingerprint,
            run_key=run_key,
            assignments=allocation.assignments,
            unmatched=matching.unmatched,
            unresolved=allocation.unresolved,
            stats=RunStats(
                profiles=len(snapshot.profiles),
                admissible_edges=graph.edge_count,
                excluded_pairs=graph.excluded_count,
                pairs_matched=len(matching.pairs),
                assignments=len(allocation.assignments),
            ),
            engine_version=self.version,
        )

    def get_top_matches(
        self,
        snapshot: CohortSnapshot,
        profile_id: str,
        limit: Optional[int] = None,
    ) -> List[CompatibilityEdge]:
        """
        Best admissible partners for one profile.

        Raises:
            ProfileNotFound: profile is not in the snapshot
        """
        graph = self.graph_for(snapshot)
        return graph.top_matches(profile_id, limit or self.policy.top_matches_limit)

    def explain(self, snapshot: CohortSnapshot, profile_id_a: str, profile_id_b: str) -> Outcome:
        """
        Explain a pair.

        Returns:
            Success(Explanation), or Failure("inadmissible") carrying the
            violations when the pair is excluded. Never a fabricated score.

        Raises:
            ProfileNotFound: either profile is not in the snapshot
        """
        graph = self.graph_for(snapshot)
        graph.profile(profile_id_a)
        graph.profile(profile_id_b)

        if profile_id_a == profile_id_b:
            return Failure(reason=INADMISSIBLE, details=["self-pair"])

        edge = graph.edge(profile_id_a, profile_id_b)
        if edge is not None:
            return Success(value=explain_edge(edge))
        return Failure(reason=INADMISSIBLE, details=graph.exclusion(profile_id_a, profile_id_b) or [])

    def cohort_stats(
        self,
        snapshot: CohortSnapshot,
        rooms: Iterable[Room] = (),
        assignments: Iterable[Assignment] = (),
    ) -> CohortStats:
        """Admin analytics over a cohort's surveys, rooms and active assignments."""
        graph = self.graph_for(snapshot)
        scores = [edge.overall_score for edge in graph.edges()]

        declared: Counter = Counter()
        for profile in snapshot.profiles:
            declared.update(profile.deal_breakers)

        rooms = list(rooms)
        return CohortStats(
            cohort_id=snapshot.cohort_id,
            surveys=len(snapshot.profiles),
            admissible_pairs=len(scores),
            excluded_pairs=graph.excluded_count,
            average_compatibility=round(sum(scores) / len(scores), 1) if scores else 0.0,
            high_compatibility_pairs=sum(1 for s in scores if s >= HIGH_COMPATIBILITY_SCORE),
            low_compatibility_pairs=sum(1 for s in scores if s < LOW_COMPATIBILITY_SCORE),
            deal_breaker_frequency=dict(sorted(declared.items())),
            rooms_available=sum(1 for r in rooms if r.is_available and r.remaining > 0),
            rooms_assigned=len({a.room_id for a in assignments}),
        )


# Convenience function for simple usage
def run_matching(
    snapshot: CohortSnapshot,
    rooms: Iterable[Room],
    policy: Optional[MatchingPolicy] = None,
) -> MatchingOutput:
    """
    Run matching once with a throwaway engine.

    Args:
        snapshot: Cohort snapshot
        rooms: Available rooms
        policy: Optional matching policy

    Returns:
        MatchingOutput
    """
    return MatchingEngine(policy).run(snapshot, rooms)
