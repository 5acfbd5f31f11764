"""Feedback API routes - drafting, submission, completion and rating."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal

from roastmyapp.api.deps import get_current_user, run_command, run_query
from roastmyapp.models.base import get_db
from roastmyapp.models.feedback import FeedbackStatus
from roastmyapp.models.user import User
from roastmyapp.services import feedback as feedback_service

router = APIRouter()


# ============================================================================
# Pydantic Schemas
# ============================================================================

class FeedbackContent(BaseModel):
    first_impression: Optional[str] = None
    strengths: Optional[List[str]] = None
    weaknesses: Optional[List[str]] = None
    recommendations: Optional[List[str]] = None
    question_responses: Optional[Dict[str, str]] = None
    additional_comments: Optional[str] = None


class RatingCreate(BaseModel):
    rating: int = Field(ge=1, le=5, strict=True)


class DomainRating(BaseModel):
    domain: Optional[str] = Field(None, max_length=100)
    overall: int = Field(ge=1, le=5, strict=True)
    comment: Optional[str] = Field(None, max_length=1000)


class RatingsCreate(BaseModel):
    ratings: List[DomainRating] = Field(min_length=1)


class RatingResponse(BaseModel):
    id: int
    feedback_id: int
    domain: Optional[str]
    overall: int
    comment: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class FeedbackResponse(BaseModel):
    id: int
    roast_request_id: int
    application_id: int
    roaster_id: int
    status: FeedbackStatus
    final_price: Decimal
    creator_rating: Optional[int]
    first_impression: Optional[str]
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    question_responses: Dict[str, str] = Field(default_factory=dict)
    additional_comments: Optional[str]
    created_at: datetime
    submitted_at: Optional[datetime]
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


# ============================================================================
# Roaster side
# ============================================================================

@router.get("/mine", response_model=List[FeedbackResponse])
async def list_my_feedbacks(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    def work(session: Session) -> List[FeedbackResponse]:
        return [
            FeedbackResponse.model_validate(feedback)
            for feedback in feedback_service.list_roaster_feedbacks(session, user.id)
        ]

    return await run_query(db, work)


@router.patch("/{feedback_id}", response_model=FeedbackResponse)
async def save_feedback_draft(
    feedback_id: int,
    data: FeedbackContent,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Save draft content; only fields present in the body are changed."""
    def work(session: Session) -> FeedbackResponse:
        feedback = feedback_service.save_feedback_draft(
            session, user.id, feedback_id, data.model_dump(exclude_unset=True)
        )
        return FeedbackResponse.model_validate(feedback)

    return await run_command(db, work)


@router.post("/{feedback_id}:submit", response_model=FeedbackResponse)
async def submit_feedback(
    feedback_id: int,
    data: Optional[FeedbackContent] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    def work(session: Session) -> FeedbackResponse:
        content = data.model_dump(exclude_unset=True) if data is not None else None
        feedback = feedback_service.submit_feedback(session, user.id, feedback_id, content)
        return FeedbackResponse.model_validate(feedback)

    return await run_command(db, work)


# ============================================================================
# Creator side
# ============================================================================

@router.post("/{feedback_id}:complete", response_model=FeedbackResponse)
async def complete_feedback(
    feedback_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Accept a submitted feedback. The last one closes the roast request."""
    def work(session: Session) -> FeedbackResponse:
        return FeedbackResponse.model_validate(feedback_service.complete_feedback(session, user.id, feedback_id))

    return await run_command(db, work)


@router.post("/{feedback_id}:rate", response_model=FeedbackResponse)
async def rate_feedback(
    feedback_id: int,
    data: RatingCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    def work(session: Session) -> FeedbackResponse:
        feedback = feedback_service.rate_feedback(session, user.id, feedback_id, data.rating)
        return FeedbackResponse.model_validate(feedback)

    return await run_command(db, work)


@router.post("/{feedback_id}/ratings", response_model=FeedbackResponse)
async def submit_feedback_ratings(
    feedback_id: int,
    data: RatingsCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Rate a completed feedback per focus area; its overall rating is their rounded mean."""
    def work(session: Session) -> FeedbackResponse:
        feedback = feedback_service.submit_feedback_ratings(
            session, user.id, feedback_id, [rating.model_dump() for rating in data.ratings]
        )
        return FeedbackResponse.model_validate(feedback)

    return await run_command(db, work)


@router.get("/{feedback_id}/ratings", response_model=List[RatingResponse])
async def list_feedback_ratings(
    feedback_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    def work(session: Session) -> List[RatingResponse]:
        return [
            RatingResponse.model_validate(rating)
            for rating in feedback_service.list_feedback_ratings(session, user.id, feedback_id)
        ]

    return await run_query(db, work)
