"""
Field Scorers

One scoring function per FieldRule kind (ordinal, time, match, affinity,
overlap). Each returns a FieldContribution whose score is normalized to
0.0 - 1.0. All functions are symmetric in their two values.
"""

from datetime import time
from typing import Any, Callable, Dict, Iterable, Optional

from .constants import FieldRule, MINUTES_PER_DAY, NEUTRAL_SCORE, ORDINAL_SCALES
from .contracts import FieldContribution


def rank(scale: Optional[str], value: Any) -> int:
    """Position of value on a named ordinal scale (ints are their own rank)."""
    if scale is None:
        return int(value)
    return ORDINAL_SCALES[scale].index(value)


def minutes_of(value: time) -> int:
    return value.hour * 60 + value.minute


def circular_minutes(a: time, b: time) -> int:
    """Minute gap between two clock times, wrapping at midnight."""
    diff = abs(minutes_of(a) - minutes_of(b))
    return min(diff, MINUTES_PER_DAY - diff)


def _penalty(penalties, distance: int) -> float:
    # Distances past the end of the table take the cap
    return penalties[min(distance, len(penalties) - 1)]


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value)


def _neutral(category: str, rule: FieldRule, a: Any, b: Any) -> FieldContribution:
    return FieldContribution(
        category=category,
        field=rule.field,
        kind=rule.kind,
        points=rule.points,
        score=NEUTRAL_SCORE,
        neutral=True,
        value_a=_text(a),
        value_b=_text(b),
    )


# =============================================================================
# KIND SCORERS
# =============================================================================

def score_ordinal(category: str, rule: FieldRule, a: Any, b: Any) -> FieldContribution:
    """Rank distance on an ordered scale, looked up in a capped penalty table."""
    wildcard = rule.params.get("wildcard")
    if wildcard is not None and wildcard in (a, b):
        score = 1.0 if a == b else rule.params["wildcard_score"]
        distance = None
    else:
        distance = abs(rank(rule.params["scale"], a) - rank(rule.params["scale"], b))
        score = 1.0 - _penalty(rule.params["penalties"], distance)

    return FieldContribution(
        category=category,
        field=rule.field,
        kind=rule.kind,
        points=rule.points,
        score=score,
        distance=distance,
        value_a=_text(a),
        value_b=_text(b),
    )


def score_time(category: str, rule: FieldRule, a: time, b: time) -> FieldContribution:
    """Linear decay over the circular minute gap; zero beyond the decay window."""
    gap = circular_minutes(a, b)
    score = max(0.0, 1.0 - gap / rule.params["decay_minutes"])
    return FieldContribution(
        category=category,
        field=rule.field,
        kind=rule.kind,
        points=rule.points,
        score=score,
        distance=gap,
        value_a=_text(a),
        value_b=_text(b),
    )


def score_match(category: str, rule: FieldRule, a: Any, b: Any) -> FieldContribution:
    score = 1.0 if a == b else rule.params["mismatch"]
    return FieldContribution(
        category=category,
        field=rule.field,
        kind=rule.kind,
        points=rule.points,
        score=score,
        value_a=_text(a),
        value_b=_text(b),
    )


def score_affinity(category: str, rule: FieldRule, a: Any, b: Any) -> FieldContribution:
    """Unordered pair lookup; falls back to equality, then the mismatch score."""
    wildcard = rule.params.get("wildcard")
    if a == b:
        score = 1.0
    elif wildcard is not None and wildcard in (a, b):
        score = rule.params["wildcard_score"]
    else:
        score = rule.params["table"].get(frozenset((a, b)), rule.params["mismatch"])

    return FieldContribution(
        category=category,
        field=rule.field,
        kind=rule.kind,
        points=rule.points,
        score=score,
        value_a=_text(a),
        value_b=_text(b),
    )


def score_overlap(category: str, rule: FieldRule, a: Iterable[str], b: Iterable[str]) -> FieldContribution:
    shared = tuple(sorted(set(a) & set(b)))
    score = min(1.0, rule.params["base"] + rule.params["per_item"] * len(shared))
    return FieldContribution(
        category=category,
        field=rule.field,
        kind=rule.kind,
        points=rule.points,
        score=score,
        distance=len(shared),
        shared=shared,
    )


KIND_SCORERS: Dict[str, Callable[..., FieldContribution]] = {
    "ordinal": score_ordinal,
    "time": score_time,
    "match": score_match,
    "affinity": score_affinity,
    "overlap": score_overlap,
}


def score_field(category: str, rule: FieldRule, a: Any, b: Any) -> FieldContribution:
    """
    Score one field for a pair of values.

    A value left blank by either side (None, or an empty set for overlap
    fields) scores NEUTRAL_SCORE and is flagged neutral.
    """
    if a is None or b is None:
        return _neutral(category, rule, a, b)
    if rule.kind == "overlap" and (not a or not b):
        return _neutral(category, rule, None, None)

    scorer = KIND_SCORERS.get(rule.kind)
    if scorer is None:
        raise ValueError(f"Unknown field rule kind: {rule.kind}")
    return scorer(category, rule, a, b)
