from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey

from .base import Base


class AssignmentRecord(Base):
    __tablename__ = "matching_assignments"

    id = Column(String(36), primary_key=True)
    cohort_id = Column(String(64), nullable=False, index=True)
    room_id = Column(String(64), ForeignKey("matching_rooms.id"), nullable=False)
    member_ids = Column(JSON, nullable=False)
    score = Column(Integer, nullable=False, default=0)
    status = Column(String(32), nullable=False, default="pending_approval", index=True)
    source = Column(String(16), nullable=False, default="matcher")
    notes = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=False), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=False), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
