"""Roast requests posted by creators."""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, ForeignKey, Enum, Boolean, Numeric
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from roastmyapp.models.base import Base


class RoastRequestStatus(enum.Enum):
    open = "open"
    collecting_applications = "collecting_applications"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class FeedbackMode(enum.Enum):
    FREE = "FREE"
    TARGETED = "TARGETED"
    STRUCTURED = "STRUCTURED"


class AppCategory(enum.Enum):
    saas = "SaaS"
    mobile = "Mobile"
    ecommerce = "E-commerce"
    landing = "Landing"
    mvp = "MVP"
    other = "Other"


OPEN_FOR_APPLICATIONS = (RoastRequestStatus.open, RoastRequestStatus.collecting_applications)
TERMINAL_REQUEST_STATUSES = (RoastRequestStatus.completed, RoastRequestStatus.cancelled)


class RoastRequest(Base):
    __tablename__ = "roast_requests"

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    app_url = Column(String(500), nullable=False)
    target_audience = Column(String(200), nullable=True)
    category = Column(Enum(AppCategory), default=AppCategory.other)
    focus_areas = Column(JSON, default=list)  # e.g. ["UX", "Pricing"]
    cover_image_url = Column(String(1000), nullable=True)
    additional_context = Column(Text, nullable=True)

    feedback_mode = Column(Enum(FeedbackMode), default=FeedbackMode.FREE, nullable=False)
    is_urgent = Column(Boolean, default=False)
    price_per_roaster = Column(Numeric(10, 2), nullable=False)
    feedbacks_requested = Column(Integer, nullable=False, default=1)

    status = Column(Enum(RoastRequestStatus), default=RoastRequestStatus.open, nullable=False, index=True)

    # Selection window: set when the first application arrives
    selection_deadline = Column(DateTime, nullable=True, index=True)
    selection_processed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    creator = relationship("User")
    questions = relationship(
        "RoastQuestion",
        back_populates="roast_request",
        cascade="all, delete-orphan",
        order_by="RoastQuestion.order",
    )
    applications = relationship(
        "RoastApplication",
        back_populates="roast_request",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    feedbacks = relationship("Feedback", back_populates="roast_request", cascade="all, delete-orphan")
    selection_job = relationship(
        "SelectionJob",
        back_populates="roast_request",
        uselist=False,
        cascade="all, delete-orphan",
    )


class RoastQuestion(Base):
    __tablename__ = "roast_questions"

    id = Column(Integer, primary_key=True, index=True)
    roast_request_id = Column(Integer, ForeignKey("roast_requests.id", ondelete="CASCADE"), nullable=False)
    domain = Column(String(50), nullable=True)  # focus area, STRUCTURED mode only
    text = Column(String(500), nullable=False)
    order = Column(Integer, default=0)
    is_default = Column(Boolean, default=False)

    roast_request = relationship("RoastRequest", back_populates="questions")
