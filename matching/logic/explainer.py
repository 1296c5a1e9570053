"""
Explanation Generator

Turns a compatibility edge into human-readable reasons and warnings.
Deterministic and side-effect free: driven entirely by the thresholds and
WARNING_RULES tables in constants.
"""

from typing import List

from .constants import (
    CATEGORY_LABELS,
    CATEGORY_REASONS,
    CATEGORY_WEIGHTS,
    STRONG_MATCH_THRESHOLD,
    WARNING_RULES,
    WEAK_CATEGORY_THRESHOLD,
    WarningRule,
)
from .contracts import CompatibilityEdge, Explanation, FieldContribution


def build_reasons(edge: CompatibilityEdge) -> List[str]:
    """
    Strong categories ordered by weight (table order breaks ties), then
    anything the two profiles have in common.
    """
    strong = [
        category for category in CATEGORY_WEIGHTS
        if edge.category_scores.get(category, 0) >= STRONG_MATCH_THRESHOLD
    ]
    strong.sort(key=lambda category: -CATEGORY_WEIGHTS[category])

    reasons = [
        f"{CATEGORY_REASONS[category]} ({edge.category_scores[category]}%)"
        for category in strong
    ]

    interests = edge.contribution("social", "interests")
    if interests is not None and interests.shared:
        reasons.append(f"Shared interests: {', '.join(interests.shared)}")

    languages = edge.contribution("social", "languages")
    if languages is not None and languages.shared:
        reasons.append(f"Common languages: {', '.join(languages.shared)}")

    return reasons


def _rule_fires(rule: WarningRule, contribution: FieldContribution) -> bool:
    if contribution.neutral:
        return False
    if rule.kind == "distance_above":
        return contribution.distance is not None and contribution.distance > rule.threshold
    if rule.kind == "value_conflict":
        return frozenset((contribution.value_a, contribution.value_b)) in rule.conflicts
    return False


def build_warnings(edge: CompatibilityEdge) -> List[str]:
    warnings: List[str] = []
    for rule in WARNING_RULES:
        contribution = edge.contribution(rule.category, rule.field)
        if contribution is not None and _rule_fires(rule, contribution):
            warnings.append(rule.message)

    for category in CATEGORY_WEIGHTS:
        score = edge.category_scores.get(category)
        if score is not None and score < WEAK_CATEGORY_THRESHOLD:
            warnings.append(f"Low {CATEGORY_LABELS[category]} compatibility ({score}%)")

    return warnings


def explain_edge(edge: CompatibilityEdge) -> Explanation:
    """
    Build the explanation for an admissible edge.

    Args:
        edge: Scored compatibility edge

    Returns:
        Explanation with reasons and warnings
    """
    return Explanation(
        profile_a=edge.profile_a,
        profile_b=edge.profile_b,
        overall_score=edge.overall_score,
        category_scores=dict(edge.category_scores),
        reasons=build_reasons(edge),
        warnings=build_warnings(edge),
    )
