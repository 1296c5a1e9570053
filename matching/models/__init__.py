# Export all matching models for easy imports
from .base import Base
from .survey import SurveyRecord
from .room import RoomRecord
from .assignment import AssignmentRecord
from .member import AssignmentMemberRecord
from .run import MatchingRunRecord

__all__ = [
    "Base",
    "SurveyRecord",
    "RoomRecord",
    "AssignmentRecord",
    "AssignmentMemberRecord",
    "MatchingRunRecord",
]
