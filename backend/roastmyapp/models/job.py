"""SelectionJob model - persisted schedule for the selection-window sweep."""
from sqlalchemy import Column, Integer, DateTime, JSON, Text, ForeignKey, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from roastmyapp.models.base import Base


class SelectionJobState(enum.Enum):
    scheduled = "scheduled"
    running = "running"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class SelectionJob(Base):
    """One auto-selection sweep per roast request, due at the selection deadline."""
    __tablename__ = "selection_jobs"

    id = Column(Integer, primary_key=True, index=True)
    roast_request_id = Column(
        Integer, ForeignKey("roast_requests.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    state = Column(Enum(SelectionJobState), default=SelectionJobState.scheduled, nullable=False)
    run_at = Column(DateTime, nullable=False, index=True)
    attempts = Column(Integer, default=0)

    # Results
    result_json = Column(JSON, nullable=True)
    last_error = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)

    roast_request = relationship("RoastRequest", back_populates="selection_job")
