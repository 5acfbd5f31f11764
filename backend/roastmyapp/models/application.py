"""Roaster applications to roast requests."""
from sqlalchemy import Column, Integer, DateTime, Text, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from roastmyapp.models.base import Base


class ApplicationStatus(enum.Enum):
    pending = "pending"
    accepted = "accepted"
    auto_selected = "auto_selected"
    rejected = "rejected"


# Statuses that occupy one of the request's slots
SELECTED_STATUSES = (ApplicationStatus.accepted, ApplicationStatus.auto_selected)


class RoastApplication(Base):
    __tablename__ = "roast_applications"

    id = Column(Integer, primary_key=True, index=True)
    roast_request_id = Column(Integer, ForeignKey("roast_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    roaster_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(Enum(ApplicationStatus), default=ApplicationStatus.pending, nullable=False)
    score = Column(Integer, nullable=False, default=0)  # 0-100
    motivation = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    selected_at = Column(DateTime, nullable=True)
    decided_at = Column(DateTime, nullable=True)

    roast_request = relationship("RoastRequest", back_populates="applications")
    roaster = relationship("User")
    feedback = relationship("Feedback", back_populates="application", uselist=False)

    __table_args__ = (
        UniqueConstraint("roast_request_id", "roaster_id", name="uix_application_request_roaster"),
    )

    @property
    def is_selected(self) -> bool:
        return self.status in SELECTED_STATUSES
