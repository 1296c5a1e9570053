"""
Matching Engine Constants

Defines ordinal scales, penalty tables, per-category field rules, weights,
thresholds and deal-breaker rules used by the compatibility engine.
All values are deterministic lookup tables; tuning a category means editing
this module, not the matcher or allocator.
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, List, NamedTuple, Tuple


# =============================================================================
# ORDINAL SCALES
# =============================================================================

# Ordered low -> high. Rank distance is the index difference.
ORDINAL_SCALES: Dict[str, List[str]] = {
    "tolerance": ["none", "low", "moderate", "high", "very_high"],
    "volume": ["silent", "quiet", "moderate", "loud", "very_loud"],
    "frequency": ["never", "rarely", "sometimes", "often", "always"],
    "temperature": ["cold", "moderate", "warm"],
    "sensitivity": ["heavy", "moderate", "light"],
    "social_level": ["introvert", "ambivert", "extrovert"],
    "study_time": ["early_morning", "morning", "afternoon", "evening", "late_night"],
}

# =============================================================================
# PENALTY TABLES (index = rank distance, last entry is the cap)
# =============================================================================

TOLERANCE_PENALTY: Tuple[float, ...] = (0.0, 0.2, 0.4, 0.6, 0.8)
VOLUME_PENALTY: Tuple[float, ...] = (0.0, 0.3, 0.5, 0.7, 0.9)
FREQUENCY_PENALTY: Tuple[float, ...] = (0.0, 0.2, 0.4, 0.6, 0.8)
FIVE_POINT_PENALTY: Tuple[float, ...] = (0.0, 0.25, 0.55, 0.8, 1.0)
THREE_POINT_PENALTY: Tuple[float, ...] = (0.0, 0.3, 0.6)
SOCIAL_LEVEL_PENALTY: Tuple[float, ...] = (0.0, 0.2, 0.4)
STUDY_TIME_PENALTY: Tuple[float, ...] = (0.0, 0.3, 0.6, 0.8)

# Score for an optional field that either side left blank
NEUTRAL_SCORE = 0.5

MINUTES_PER_DAY = 24 * 60

# =============================================================================
# AFFINITY TABLES (unordered value pairs -> score)
# =============================================================================

def _pairs(table: Dict[Tuple[str, str], float]) -> Dict[FrozenSet[str], float]:
    return {frozenset(pair): score for pair, score in table.items()}


FOOD_AFFINITY = _pairs({
    ("vegetarian", "vegan"): 0.7,
    ("vegetarian", "eggetarian"): 0.8,
    ("vegan", "eggetarian"): 0.6,
    ("eggetarian", "non_vegetarian"): 0.5,
})

STUDY_STYLE_AFFINITY = _pairs({
    ("quiet", "individual"): 0.8,
    ("quiet", "intensive"): 0.8,
    ("group", "individual"): 0.4,
    ("music", "quiet"): 0.2,
    ("music", "casual"): 0.8,
    ("intensive", "casual"): 0.3,
})

CONFLICT_STYLE_AFFINITY = _pairs({
    ("avoiding", "accommodating"): 0.7,
    ("avoiding", "competing"): 0.3,
})

COMMUNICATION_STYLE_AFFINITY = _pairs({
    ("direct", "assertive"): 0.8,
    ("indirect", "passive"): 0.8,
    ("direct", "passive"): 0.4,
})

# =============================================================================
# FIELD RULES
# =============================================================================

class FieldRule(NamedTuple):
    """One scored field inside a category.

    kind is one of: ordinal, time, match, affinity, overlap.
    points is the field's share of its category subscore.
    """
    field: str
    kind: str
    points: float
    params: Dict[str, Any]


CATEGORY_RULES: Dict[str, List[FieldRule]] = {
    "lifestyle": [
        FieldRule("smoking_tolerance", "ordinal", 30, {"scale": "tolerance", "penalties": TOLERANCE_PENALTY}),
        FieldRule("drinking_tolerance", "ordinal", 15, {"scale": "tolerance", "penalties": TOLERANCE_PENALTY}),
        FieldRule("food_preference", "affinity", 20, {
            "table": FOOD_AFFINITY, "mismatch": 0.3,
            "wildcard": "no_preference", "wildcard_score": 0.9,
        }),
        FieldRule("music_volume", "ordinal", 15, {"scale": "volume", "penalties": VOLUME_PENALTY}),
        FieldRule("guests_frequency", "ordinal", 10, {"scale": "frequency", "penalties": FREQUENCY_PENALTY}),
        FieldRule("temperature_preference", "ordinal", 10, {"scale": "temperature", "penalties": THREE_POINT_PENALTY}),
    ],
    "study": [
        FieldRule("study_style", "affinity", 30, {"table": STUDY_STYLE_AFFINITY, "mismatch": 0.5}),
        FieldRule("study_time", "ordinal", 25, {
            "scale": "study_time", "penalties": STUDY_TIME_PENALTY,
            "wildcard": "flexible", "wildcard_score": 0.8,
        }),
        FieldRule("needs_quiet", "match", 25, {"mismatch": 0.3}),
        FieldRule("music_while_studying", "match", 10, {"mismatch": 0.5}),
        FieldRule("group_study", "match", 10, {"mismatch": 0.5}),
    ],
    "cleanliness": [
        FieldRule("cleanliness_level", "ordinal", 40, {"scale": None, "penalties": FIVE_POINT_PENALTY}),
        FieldRule("organization_level", "ordinal", 30, {"scale": None, "penalties": FIVE_POINT_PENALTY}),
        FieldRule("cleaning_frequency", "ordinal", 15, {"scale": "frequency", "penalties": FREQUENCY_PENALTY}),
        FieldRule("shared_items_comfort", "ordinal", 15, {"scale": None, "penalties": FIVE_POINT_PENALTY}),
    ],
    "social": [
        FieldRule("social_level", "ordinal", 25, {"scale": "social_level", "penalties": SOCIAL_LEVEL_PENALTY}),
        FieldRule("visitor_frequency", "ordinal", 25, {"scale": "frequency", "penalties": FREQUENCY_PENALTY}),
        FieldRule("party_attitude", "ordinal", 15, {"scale": "frequency", "penalties": FREQUENCY_PENALTY}),
        FieldRule("privacy_needs", "ordinal", 15, {"scale": None, "penalties": FIVE_POINT_PENALTY}),
        FieldRule("interests", "overlap", 10, {"base": 0.4, "per_item": 0.15}),
        FieldRule("languages", "overlap", 10, {"base": 0.5, "per_item": 0.25}),
    ],
    "sleep": [
        FieldRule("bedtime", "time", 35, {"decay_minutes": 360}),
        FieldRule("wake_time", "time", 35, {"decay_minutes": 360}),
        FieldRule("sleep_sensitivity", "ordinal", 20, {"scale": "sensitivity", "penalties": THREE_POINT_PENALTY}),
        FieldRule("naps", "match", 10, {"mismatch": 0.6}),
    ],
    "personality": [
        FieldRule("introvert_extrovert", "ordinal", 40, {"scale": None, "penalties": FIVE_POINT_PENALTY}),
        FieldRule("conflict_style", "affinity", 30, {
            "table": CONFLICT_STYLE_AFFINITY, "mismatch": 0.6,
            "wildcard": "collaborating", "wildcard_score": 0.9,
        }),
        FieldRule("communication_style", "affinity", 15, {"table": COMMUNICATION_STYLE_AFFINITY, "mismatch": 0.6}),
        FieldRule("adaptability", "ordinal", 15, {"scale": None, "penalties": FIVE_POINT_PENALTY}),
    ],
}

# =============================================================================
# CATEGORY WEIGHTS
# =============================================================================

# Must sum to 1.0; dict order is also the tie-break order for explanations
CATEGORY_WEIGHTS: Dict[str, float] = {
    "lifestyle": 0.20,
    "study": 0.20,
    "cleanliness": 0.20,
    "social": 0.15,
    "sleep": 0.15,
    "personality": 0.10,
}

CATEGORY_LABELS: Dict[str, str] = {
    "lifestyle": "lifestyle",
    "study": "study habits",
    "cleanliness": "cleanliness",
    "social": "social preferences",
    "sleep": "sleep schedule",
    "personality": "personality",
}

CATEGORY_REASONS: Dict[str, str] = {
    "lifestyle": "Similar lifestyle habits",
    "study": "Compatible study preferences",
    "cleanliness": "Similar cleanliness standards",
    "social": "Matching social preferences",
    "sleep": "Compatible sleep schedules",
    "personality": "Complementary personalities",
}

# =============================================================================
# EXPLANATION THRESHOLDS
# =============================================================================

STRONG_MATCH_THRESHOLD = 80
WEAK_CATEGORY_THRESHOLD = 40
HIGH_COMPATIBILITY_SCORE = 80
LOW_COMPATIBILITY_SCORE = 50


class WarningRule(NamedTuple):
    """Field-level warning raised from an edge's contributions.

    kind "distance_above" fires when the contribution distance exceeds
    threshold; kind "value_conflict" fires when the unordered value pair is
    listed in conflicts.
    """
    category: str
    field: str
    kind: str
    threshold: float
    conflicts: FrozenSet[FrozenSet[str]]
    message: str


_FOOD_CONFLICTS = frozenset({
    frozenset({"vegetarian", "non_vegetarian"}),
    frozenset({"vegan", "non_vegetarian"}),
})

WARNING_RULES: List[WarningRule] = [
    WarningRule("sleep", "bedtime", "distance_above", 180, frozenset(),
                "Bedtimes differ by more than 3 hours"),
    WarningRule("lifestyle", "smoking_tolerance", "distance_above", 1, frozenset(),
                "Different attitudes to smoking"),
    WarningRule("lifestyle", "food_preference", "value_conflict", 0, _FOOD_CONFLICTS,
                "Conflicting food preferences"),
    WarningRule("lifestyle", "guests_frequency", "distance_above", 1, frozenset(),
                "Different expectations about guests"),
    WarningRule("cleanliness", "cleanliness_level", "distance_above", 2, frozenset(),
                "Different cleanliness standards"),
]

# =============================================================================
# POLICY & DEAL-BREAKERS
# =============================================================================

GENDER_POLICY_VIOLATION = "different-gender"


class DealBreakerRule(NamedTuple):
    """Trait on the *other* profile that triggers exclusion.

    op is one of: above, at_least, at_most, between.
    For between, threshold is a (start_minute, end_minute) window.
    """
    category: str
    field: str
    op: str
    threshold: Any
    scale: Any


DEAL_BREAKER_RULES: Dict[str, DealBreakerRule] = {
    "smoking": DealBreakerRule("lifestyle", "smoking_tolerance", "above", "moderate", "tolerance"),
    "drinking": DealBreakerRule("lifestyle", "drinking_tolerance", "above", "moderate", "tolerance"),
    "loud-music": DealBreakerRule("lifestyle", "music_volume", "at_least", "loud", "volume"),
    "frequent-guests": DealBreakerRule("lifestyle", "guests_frequency", "at_least", "often", "frequency"),
    "messy": DealBreakerRule("cleanliness", "cleanliness_level", "at_most", 2, None),
    "late-nights": DealBreakerRule("sleep", "bedtime", "between", (60, 300), None),
    "early-riser": DealBreakerRule("sleep", "wake_time", "between", (180, 360), None),
}

# =============================================================================
# ALLOCATION
# =============================================================================

class AssignmentStatus(str, Enum):
    """Assignment workflow states."""
    PENDING_APPROVAL = "pending_approval"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    COMPLETED = "completed"


ALLOWED_TRANSITIONS: Dict[AssignmentStatus, FrozenSet[AssignmentStatus]] = {
    AssignmentStatus.PENDING_APPROVAL: frozenset({AssignmentStatus.CONFIRMED, AssignmentStatus.REJECTED}),
    AssignmentStatus.CONFIRMED: frozenset({AssignmentStatus.COMPLETED}),
    AssignmentStatus.REJECTED: frozenset(),
    AssignmentStatus.COMPLETED: frozenset(),
}

SAME_REGION_PRIORITY_BONUS = 0.5
AMENITY_ROOM_BONUS = 2
LOW_FLOOR_BONUS_CAP = 10

MIN_ROOM_CAPACITY = 2
MATCHER_SOURCE = "matcher"
MANUAL_SOURCE = "manual"

ENGINE_VERSION = "1.0.0"
