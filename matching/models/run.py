from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint

from .base import Base


class MatchingRunRecord(Base):
    """A committed matching batch, kept so a retried run returns the same output."""
    __tablename__ = "matching_runs"
    __table_args__ = (
        UniqueConstraint("cohort_id", "run_key", name="uq_matching_run_cohort_key"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    cohort_id = Column(String(64), nullable=False, index=True)
    run_key = Column(String(64), nullable=False)
    snapshot_fingerprint = Column(String(64), nullable=False)
    output = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=False), default=datetime.utcnow, nullable=False)
