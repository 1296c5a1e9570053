from sqlalchemy import Column, Integer, String, Boolean, JSON

from .base import Base


class RoomRecord(Base):
    __tablename__ = "matching_rooms"

    id = Column(String(64), primary_key=True)
    # NULL means the room is open to every cohort
    cohort_id = Column(String(64), nullable=True, index=True)
    building = Column(String(128), nullable=False, default="")
    floor = Column(Integer, nullable=False, default=0)
    capacity = Column(Integer, nullable=False)
    occupancy = Column(Integer, nullable=False, default=0)
    amenities = Column(JSON, nullable=False, default=list)
    is_available = Column(Boolean, nullable=False, default=True)

    # Optimistic concurrency counter, bumped by every seat claim/release
    version = Column(Integer, nullable=False, default=0)
