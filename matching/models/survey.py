from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint

from .base import Base


class SurveyRecord(Base):
    """One submitted compatibility survey; payload is the validated Profile as JSON."""
    __tablename__ = "matching_surveys"
    __table_args__ = (
        UniqueConstraint("cohort_id", "profile_id", name="uq_matching_survey_cohort_profile"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    cohort_id = Column(String(64), nullable=False, index=True)
    profile_id = Column(String(64), nullable=False, index=True)
    gender = Column(String(32), nullable=False)
    payload = Column(JSON, nullable=False)
    submitted_at = Column(DateTime(timezone=False), default=datetime.utcnow, nullable=False)
