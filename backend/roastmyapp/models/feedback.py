from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, ForeignKey, Enum, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from roastmyapp.models.base import Base


class FeedbackStatus(enum.Enum):
    draft = "draft"
    pending = "pending"
    completed = "completed"


class Feedback(Base):
    """Deliverable written by a selected roaster for one roast request."""
    __tablename__ = "feedbacks"

    id = Column(Integer, primary_key=True, index=True)
    roast_request_id = Column(Integer, ForeignKey("roast_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    application_id = Column(Integer, ForeignKey("roast_applications.id", ondelete="CASCADE"), unique=True, nullable=False)
    roaster_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(Enum(FeedbackStatus), default=FeedbackStatus.draft, nullable=False)
    final_price = Column(Numeric(10, 2), nullable=False)
    creator_rating = Column(Integer, nullable=True)  # 1-5, set once

    first_impression = Column(Text, nullable=True)
    strengths = Column(JSON, default=list)
    weaknesses = Column(JSON, default=list)
    recommendations = Column(JSON, default=list)
    question_responses = Column(JSON, default=dict)  # {question_id: response}
    additional_comments = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    submitted_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    rated_at = Column(DateTime, nullable=True)

    roast_request = relationship("RoastRequest", back_populates="feedbacks")
    application = relationship("RoastApplication", back_populates="feedback")
    roaster = relationship("User")
    ratings = relationship(
        "FeedbackRating",
        back_populates="feedback",
        cascade="all, delete-orphan",
        order_by="FeedbackRating.id",
    )


class FeedbackRating(Base):
    """Creator's rating of a completed feedback, overall (no domain) or for one focus area."""
    __tablename__ = "feedback_ratings"
    __table_args__ = (UniqueConstraint("feedback_id", "domain", name="uq_feedback_rating_domain"),)

    id = Column(Integer, primary_key=True, index=True)
    feedback_id = Column(Integer, ForeignKey("feedbacks.id", ondelete="CASCADE"), nullable=False, index=True)
    domain = Column(String(100), nullable=True)  # focus area; NULL for a single overall rating
    overall = Column(Integer, nullable=False)  # 1-5
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    feedback = relationship("Feedback", back_populates="ratings")
