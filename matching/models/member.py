from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint

from .base import Base


class AssignmentMemberRecord(Base):
    """A profile's seat in an active assignment; at most one per profile per cohort."""
    __tablename__ = "matching_assignment_members"
    __table_args__ = (
        UniqueConstraint("cohort_id", "profile_id", name="uq_matching_member_cohort_profile"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    cohort_id = Column(String(64), nullable=False, index=True)
    profile_id = Column(String(64), nullable=False)
    assignment_id = Column(String(36), ForeignKey("matching_assignments.id"), nullable=False, index=True)
