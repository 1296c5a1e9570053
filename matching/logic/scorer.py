"""
Compatibility Scorer

Combines field scores into six category subscores and a weighted overall
score for a profile pair. Pure and deterministic; the pair is put in
canonical order first so score(A, B) and score(B, A) are the same object.
"""

from typing import Dict, List, Tuple

from .constants import CATEGORY_RULES, CATEGORY_WEIGHTS, GENDER_POLICY_VIOLATION
from .contracts import FieldContribution, Profile, ScoreResult
from .field_scorers import score_field


def canonical_pair(a: Profile, b: Profile) -> Tuple[Profile, Profile]:
    return (a, b) if a.profile_id <= b.profile_id else (b, a)


def score_category(category: str, a: Profile, b: Profile) -> Tuple[int, List[FieldContribution]]:
    """
    Score one category.

    Returns:
        (subscore 0-100, per-field contributions)
    """
    section_a = a.section(category)
    section_b = b.section(category)
    contributions = [
        score_field(category, rule, getattr(section_a, rule.field), getattr(section_b, rule.field))
        for rule in CATEGORY_RULES[category]
    ]

    total_points = sum(c.points for c in contributions)
    earned = sum(c.points * c.score for c in contributions)
    subscore = round(100 * earned / total_points) if total_points else 0
    return max(0, min(100, subscore)), contributions


def overall_from_categories(category_scores: Dict[str, int]) -> int:
    total = sum(CATEGORY_WEIGHTS[name] * score for name, score in category_scores.items())
    return max(0, min(100, round(total)))


def violates_gender_policy(a: Profile, b: Profile) -> bool:
    return a.gender != b.gender


def score_pair(a: Profile, b: Profile, require_same_gender: bool = True) -> ScoreResult:
    """
    Score a pair of profiles.

    Args:
        a: First profile
        b: Second profile
        require_same_gender: Enforce the same-gender housing policy

    Returns:
        ScoreResult in canonical (profile_a < profile_b) order. A policy
        violation yields overall_score 0 and admissible=False.
    """
    first, second = canonical_pair(a, b)

    category_scores: Dict[str, int] = {}
    contributions: List[FieldContribution] = []
    for category in CATEGORY_WEIGHTS:
        subscore, fields = score_category(category, first, second)
        category_scores[category] = subscore
        contributions.extend(fields)

    if require_same_gender and violates_gender_policy(first, second):
        return ScoreResult(
            profile_a=first.profile_id,
            profile_b=second.profile_id,
            overall_score=0,
            category_scores=category_scores,
            contributions=contributions,
            admissible=False,
            policy_violations=[GENDER_POLICY_VIOLATION],
        )

    return ScoreResult(
        profile_a=first.profile_id,
        profile_b=second.profile_id,
        overall_score=overall_from_categories(category_scores),
        category_scores=category_scores,
        contributions=contributions,
    )
