"""
Data Contracts for the Compatibility Matching Engine

Defines Pydantic models for Profile (input), CompatibilityEdge and the
matching/allocation outputs. These contracts are the API boundary for the
engine; anything reaching the scorer has already passed validation here.
"""

import hashlib
import json
from datetime import datetime, time
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from .constants import AssignmentStatus, CATEGORY_WEIGHTS, MATCHER_SOURCE, MIN_ROOM_CAPACITY
from .errors import SnapshotError


# =============================================================================
# ENUMS
# =============================================================================

class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    NON_BINARY = "non_binary"
    PREFER_NOT_TO_SAY = "prefer_not_to_say"


class ToleranceLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    VERY_HIGH = "very_high"


class VolumeLevel(str, Enum):
    SILENT = "silent"
    QUIET = "quiet"
    MODERATE = "moderate"
    LOUD = "loud"
    VERY_LOUD = "very_loud"


class FrequencyLevel(str, Enum):
    NEVER = "never"
    RARELY = "rarely"
    SOMETIMES = "sometimes"
    OFTEN = "often"
    ALWAYS = "always"


class FoodPreference(str, Enum):
    VEGETARIAN = "vegetarian"
    NON_VEGETARIAN = "non_vegetarian"
    VEGAN = "vegan"
    EGGETARIAN = "eggetarian"
    NO_PREFERENCE = "no_preference"


class TemperaturePreference(str, Enum):
    COLD = "cold"
    MODERATE = "moderate"
    WARM = "warm"


class StudyStyle(str, Enum):
    QUIET = "quiet"
    MUSIC = "music"
    GROUP = "group"
    INDIVIDUAL = "individual"
    INTENSIVE = "intensive"
    CASUAL = "casual"


class StudyTime(str, Enum):
    EARLY_MORNING = "early_morning"
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    LATE_NIGHT = "late_night"
    FLEXIBLE = "flexible"


class SocialLevel(str, Enum):
    INTROVERT = "introvert"
    AMBIVERT = "ambivert"
    EXTROVERT = "extrovert"


class SleepSensitivity(str, Enum):
    HEAVY = "heavy"
    MODERATE = "moderate"
    LIGHT = "light"


class ConflictStyle(str, Enum):
    AVOIDING = "avoiding"
    ACCOMMODATING = "accommodating"
    COMPETING = "competing"
    COLLABORATING = "collaborating"


class CommunicationStyle(str, Enum):
    DIRECT = "direct"
    INDIRECT = "indirect"
    ASSERTIVE = "assertive"
    PASSIVE = "passive"


# =============================================================================
# INPUT CONTRACTS
# =============================================================================

def _parse_clock(value: Any) -> Any:
    """Accept "23:30" as well as "11:30 PM" style survey answers."""
    if not isinstance(value, str):
        return value
    text = value.strip().upper()
    if text.endswith("AM") or text.endswith("PM"):
        meridiem = text[-2:]
        hours_text, _, minutes_text = text[:-2].strip().partition(":")
        hours = int(hours_text)
        minutes = int(minutes_text or 0)
        if not 1 <= hours <= 12:
            raise ValueError(f"Invalid 12-hour clock value: {value}")
        if meridiem == "PM" and hours != 12:
            hours += 12
        if meridiem == "AM" and hours == 12:
            hours = 0
        return time(hours, minutes)
    return value


def _normalize_terms(values: Iterable[str]) -> Tuple[str, ...]:
    return tuple(sorted({v.strip().lower() for v in values if v and v.strip()}))


def normalize_tag(tag: str) -> str:
    """Fold a deal-breaker tag to its canonical spelling ("Loud music" -> "loud-music")."""
    return "-".join(tag.strip().lower().replace("_", " ").split())


class _SurveySection(BaseModel):
    class Config:
        frozen = True
        use_enum_values = True
        extra = "forbid"


class LifestylePreferences(_SurveySection):
    smoking_tolerance: ToleranceLevel
    drinking_tolerance: ToleranceLevel
    food_preference: FoodPreference
    guests_frequency: FrequencyLevel
    music_volume: Optional[VolumeLevel] = None
    temperature_preference: Optional[TemperaturePreference] = None


class StudyHabits(_SurveySection):
    study_style: StudyStyle
    study_time: StudyTime
    needs_quiet: bool
    music_while_studying: Optional[bool] = None
    group_study: Optional[bool] = None


class CleanlinessPreferences(_SurveySection):
    cleanliness_level: int = Field(ge=1, le=5)
    organization_level: int = Field(ge=1, le=5)
    cleaning_frequency: Optional[FrequencyLevel] = None
    shared_items_comfort: Optional[int] = Field(default=None, ge=1, le=5)


class SocialPreferences(_SurveySection):
    social_level: SocialLevel
    visitor_frequency: FrequencyLevel
    party_attitude: Optional[FrequencyLevel] = None
    privacy_needs: Optional[int] = Field(default=None, ge=1, le=5)
    interests: Tuple[str, ...] = ()
    languages: Tuple[str, ...] = ()

    @field_validator("interests", "languages", mode="before")
    @classmethod
    def _normalize(cls, value):
        if value is None:
            return ()
        return _normalize_terms(value)


class SleepSchedule(_SurveySection):
    bedtime: time
    wake_time: time
    sleep_sensitivity: SleepSensitivity
    naps: Optional[bool] = None

    @field_validator("bedtime", "wake_time", mode="before")
    @classmethod
    def _clock(cls, value):
        return _parse_clock(value)


class PersonalityTraits(_SurveySection):
    introvert_extrovert: int = Field(ge=1, le=5)  # 1=introvert, 5=extrovert
    conflict_style: ConflictStyle
    communication_style: Optional[CommunicationStyle] = None
    adaptability: Optional[int] = Field(default=None, ge=1, le=5)


class Profile(BaseModel):
    """
    One survey per person per cohort.
    Immutable once submitted; required fields are enforced here so the
    scorer never has to default them.
    """
    # Identity
    profile_id: str = Field(min_length=1)
    cohort_id: str = Field(min_length=1)
    display_name: Optional[str] = None

    # Demographics
    age: Optional[int] = Field(default=None, ge=14, le=100)
    gender: Gender
    academic_track: str = Field(min_length=1)
    academic_year: int = Field(ge=1, le=6)
    home_region: Optional[str] = None

    # Preference categories
    lifestyle: LifestylePreferences
    study: StudyHabits
    cleanliness: CleanlinessPreferences
    social: SocialPreferences
    sleep: SleepSchedule
    personality: PersonalityTraits

    # Hard constraints
    deal_breakers: Tuple[str, ...] = ()

    submitted_at: Optional[datetime] = None

    class Config:
        frozen = True
        use_enum_values = True
        extra = "forbid"

    @field_validator("deal_breakers", mode="before")
    @classmethod
    def _normalize_deal_breakers(cls, value):
        if value is None:
            return ()
        return tuple(sorted({normalize_tag(tag) for tag in value if tag and tag.strip()}))

    def section(self, category: str) -> BaseModel:
        """Return the preference section for a category name."""
        return getattr(self, category)


class CohortSnapshot(BaseModel):
    """Frozen, canonically ordered set of profiles for one matching run."""
    cohort_id: str
    profiles: Tuple[Profile, ...] = ()

    class Config:
        frozen = True

    @classmethod
    def take(cls, cohort_id: str, profiles: Iterable[Profile]) -> "CohortSnapshot":
        """
        Build a snapshot, rejecting duplicate ids and foreign-cohort profiles.

        Raises:
            SnapshotError: if the profiles do not form a valid cohort snapshot
        """
        ordered = sorted(profiles, key=lambda p: p.profile_id)
        seen = set()
        for profile in ordered:
            if profile.cohort_id != cohort_id:
                raise SnapshotError(
                    f"Profile {profile.profile_id} belongs to cohort {profile.cohort_id}, not {cohort_id}"
                )
            if profile.profile_id in seen:
                raise SnapshotError(f"Duplicate profile id in snapshot: {profile.profile_id}")
            seen.add(profile.profile_id)
        return cls(cohort_id=cohort_id, profiles=tuple(ordered))

    @property
    def fingerprint(self) -> str:
        """SHA-256 over the cohort id and canonical JSON of every profile."""
        payload = json.dumps(
            {
                "cohort_id": self.cohort_id,
                "profiles": [p.model_dump(mode="json") for p in self.profiles],
            },
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def by_id(self) -> Dict[str, Profile]:
        return {p.profile_id: p for p in self.profiles}


class MatchingPolicy(BaseModel):
    """Tunable knobs for a matching run (see config.load_policy)."""
    require_same_gender: bool = True
    min_pair_score: int = Field(default=0, ge=0, le=100)
    max_claim_retries: int = Field(default=3, ge=1)
    top_matches_limit: int = Field(default=10, ge=1)

    class Config:
        frozen = True


# =============================================================================
# SCORING CONTRACTS
# =============================================================================

class FieldContribution(BaseModel):
    """Raw per-field result used to build explanations."""
    category: str
    field: str
    kind: str
    points: float
    score: float = Field(ge=0.0, le=1.0)
    neutral: bool = False
    distance: Optional[float] = None
    value_a: Optional[str] = None
    value_b: Optional[str] = None
    shared: Tuple[str, ...] = ()

    class Config:
        frozen = True


class ScoreResult(BaseModel):
    """Scorer output for one canonically ordered profile pair."""
    profile_a: str
    profile_b: str
    overall_score: int = Field(ge=0, le=100)
    category_scores: Dict[str, int] = Field(default_factory=dict)
    contributions: List[FieldContribution] = Field(default_factory=list)
    admissible: bool = True
    policy_violations: List[str] = Field(default_factory=list)


class DealBreakerCheck(BaseModel):
    """Deal-breaker filter output."""
    admissible: bool = True
    violations: List[str] = Field(default_factory=list)


class CompatibilityEdge(BaseModel):
    """
    Scored relationship between two admissible profiles.
    profile_a < profile_b always, so edge(A, B) and edge(B, A) are identical.
    """
    profile_a: str
    profile_b: str
    overall_score: int = Field(ge=0, le=100)
    category_scores: Dict[str, int] = Field(default_factory=dict)
    contributions: List[FieldContribution] = Field(default_factory=list)
    reasons: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    admissible: bool = True
    violations: List[str] = Field(default_factory=list)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.profile_a, self.profile_b)

    def other(self, profile_id: str) -> str:
        return self.profile_b if profile_id == self.profile_a else self.profile_a

    def contribution(self, category: str, field: str) -> Optional[FieldContribution]:
        for item in self.contributions:
            if item.category == category and item.field == field:
                return item
        return None


class Explanation(BaseModel):
    """Human-readable reasons and warnings for one pair."""
    profile_a: str
    profile_b: str
    overall_score: int
    category_scores: Dict[str, int] = Field(default_factory=dict)
    reasons: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


# =============================================================================
# MATCHING & ALLOCATION CONTRACTS
# =============================================================================

class MatchedPair(BaseModel):
    profile_a: str
    profile_b: str
    score: int


class MatchingResult(BaseModel):
    """Disjoint pairs plus every profile left without a partner."""
    pairs: List[MatchedPair] = Field(default_factory=list)
    unmatched: List[str] = Field(default_factory=list)


class MatchedGroup(BaseModel):
    """Profiles to be housed together (a pair, or larger for shared rooms)."""
    member_ids: Tuple[str, ...]
    score: int = 0

    @classmethod
    def from_pair(cls, pair: MatchedPair) -> "MatchedGroup":
        return cls(member_ids=(pair.profile_a, pair.profile_b), score=pair.score)


class Room(BaseModel):
    room_id: str
    capacity: int = Field(ge=MIN_ROOM_CAPACITY)
    occupancy: int = Field(default=0, ge=0)
    floor: int = 0
    building: str = ""
    amenities: Tuple[str, ...] = ()
    is_available: bool = True
    version: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.capacity - self.occupancy)


class Assignment(BaseModel):
    """Committed outcome: a group of profiles placed in a room."""
    assignment_id: str
    cohort_id: str
    room_id: str
    member_ids: List[str]
    score: int = 0
    status: AssignmentStatus = AssignmentStatus.PENDING_APPROVAL
    source: str = MATCHER_SOURCE
    notes: str = ""


class AllocationResult(BaseModel):
    assignments: List[Assignment] = Field(default_factory=list)
    unresolved: List[MatchedGroup] = Field(default_factory=list)


class RunStats(BaseModel):
    profiles: int = 0
    admissible_edges: int = 0
    excluded_pairs: int = 0
    pairs_matched: int = 0
    assignments: int = 0


class MatchingOutput(BaseModel):
    """
    Output contract for a cohort matching run.
    Contains no timings or random ids so identical snapshots serialize identically.
    """
    cohort_id: str
    snapshot_fingerprint: str
    run_key: str = ""
    assignments: List[Assignment] = Field(default_factory=list)
    unmatched: List[str] = Field(default_factory=list)
    unresolved: List[MatchedGroup] = Field(default_factory=list)
    stats: RunStats = Field(default_factory=RunStats)
    engine_version: str = "1.0.0"


class CohortStats(BaseModel):
    """Admin analytics for one cohort."""
    cohort_id: str
    surveys: int = 0
    admissible_pairs: int = 0
    excluded_pairs: int = 0
    average_compatibility: float = 0.0
    high_compatibility_pairs: int = 0
    low_compatibility_pairs: int = 0
    deal_breaker_frequency: Dict[str, int] = Field(default_factory=dict)
    rooms_available: int = 0
    rooms_assigned: int = 0


CATEGORY_NAMES: List[str] = list(CATEGORY_WEIGHTS)
