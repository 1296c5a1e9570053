"""
Room Allocator

Places matched groups into capacity-bounded rooms. Groups are served in
priority order (seniority, then shared home region) and each takes the best
remaining room that still fits it. Groups that fit nowhere are returned as
unresolved for escalation; nothing is ever force-assigned.
"""

import uuid
from typing import Callable, Dict, Iterable, List, Mapping

from .constants import (
    AMENITY_ROOM_BONUS,
    LOW_FLOOR_BONUS_CAP,
    MATCHER_SOURCE,
    SAME_REGION_PRIORITY_BONUS,
    AssignmentStatus,
)
from .contracts import AllocationResult, Assignment, MatchedGroup, Profile, Room
from .outcomes import Failure, NO_ROOM_AVAILABLE, Outcome, Success

# Fixed namespace so assignment ids are stable across runs and processes
ASSIGNMENT_NAMESPACE = uuid.UUID("6f1c2b0e-8a4d-5e3f-9b7a-2c1d0e4f5a6b")

GroupPriority = Callable[[MatchedGroup, Mapping[str, Profile]], float]
RoomPriority = Callable[[Room], float]


# =============================================================================
# PRIORITIES
# =============================================================================

def default_group_priority(group: MatchedGroup, profiles: Mapping[str, Profile]) -> float:
    """Average academic year, plus a bonus when every member shares a home region."""
    members = [profiles[m] for m in group.member_ids if m in profiles]
    if not members:
        return 0.0

    priority = sum(p.academic_year for p in members) / len(members)
    regions = {p.home_region for p in members}
    if len(regions) == 1 and None not in regions:
        priority += SAME_REGION_PRIORITY_BONUS
    return priority


def default_room_priority(room: Room) -> float:
    return len(room.amenities) * AMENITY_ROOM_BONUS + max(0, LOW_FLOOR_BONUS_CAP - room.floor)


def order_groups(
    groups: Iterable[MatchedGroup],
    profiles: Mapping[str, Profile],
    priority: GroupPriority = default_group_priority,
) -> List[MatchedGroup]:
    """Priority desc, then score desc, then member ids."""
    return sorted(groups, key=lambda g: (-priority(g, profiles), -g.score, g.member_ids))


def order_rooms(rooms: Iterable[Room], priority: RoomPriority = default_room_priority) -> List[Room]:
    """Available rooms only; priority desc, ties on room id."""
    return sorted(
        (r for r in rooms if r.is_available),
        key=lambda r: (-priority(r), r.room_id),
    )


# =============================================================================
# PLACEMENT
# =============================================================================

def assignment_id_for(cohort_id: str, member_ids: Iterable[str], salt: str = "") -> str:
    """Deterministic id: the same cohort, salt and members always map to the same id."""
    name = f"{cohort_id}:{salt}:{'|'.join(sorted(member_ids))}"
    return str(uuid.uuid5(ASSIGNMENT_NAMESPACE, name))


def place_group(group: MatchedGroup, rooms: List[Room], remaining: Dict[str, int]) -> Outcome:
    """
    Pick the first room (in the given order) with enough remaining seats.

    Decrements remaining for the chosen room.

    Returns:
        Success(room_id) or Failure("no_room_available")
    """
    size = len(group.member_ids)
    for room in rooms:
        if remaining.get(room.room_id, 0) >= size:
            remaining[room.room_id] -= size
            return Success(value=room.room_id)
    return Failure(reason=NO_ROOM_AVAILABLE, details=list(group.member_ids))


def allocate_rooms(
    cohort_id: str,
    groups: Iterable[MatchedGroup],
    rooms: Iterable[Room],
    profiles: Mapping[str, Profile],
    group_priority: GroupPriority = default_group_priority,
    room_priority: RoomPriority = default_room_priority,
    source: str = MATCHER_SOURCE,
    id_salt: str = "",
) -> AllocationResult:
    """
    Allocate rooms to matched groups.

    Args:
        cohort_id: Cohort being housed
        groups: Matched groups (pairs or larger)
        rooms: Candidate rooms; unavailable ones are skipped
        profiles: Profiles by id, used by the group priority
        group_priority: Ordering function for groups
        room_priority: Ordering function for rooms
        source: Assignment source tag
        id_salt: Mixed into assignment ids so separate runs never collide

    Returns:
        AllocationResult with PENDING_APPROVAL assignments and unresolved groups
    """
    ordered_rooms = order_rooms(rooms, room_priority)
    remaining = {room.room_id: room.remaining for room in ordered_rooms}

    result = AllocationResult()
    for group in order_groups(groups, profiles, group_priority):
        outcome = place_group(group, ordered_rooms, remaining)
        if not outcome.ok:
            result.unresolved.append(group)
            continue

        members = sorted(group.member_ids)
        result.assignments.append(Assignment(
            assignment_id=assignment_id_for(cohort_id, members, id_salt),
            cohort_id=cohort_id,
            room_id=outcome.value,
            member_ids=members,
            score=group.score,
            status=AssignmentStatus.PENDING_APPROVAL,
            source=source,
        ))

    return result


def fallback_rooms(room_id: str, rooms: List[Room]) -> List[Room]:
    """The preferred room first, then every other room in its existing order."""
    preferred = [r for r in rooms if r.room_id == room_id]
    return preferred + [r for r in rooms if r.room_id != room_id]

