"""Roast request API routes - posting, browsing, pricing and applying."""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal

from roastmyapp.api.deps import get_current_user, page_limit, run_command, run_query
from roastmyapp.models.base import get_db
from roastmyapp.models.application import ApplicationStatus
from roastmyapp.models.roast_request import AppCategory, FeedbackMode, RoastRequest, RoastRequestStatus
from roastmyapp.models.user import User
from roastmyapp.services import intake
from roastmyapp.services import roast_requests as roast_request_service
from roastmyapp.services.errors import RoastError
from roastmyapp.services.pricing import calculate_pricing, format_pricing_breakdown
from roastmyapp.workers.selection_tasks import schedule_selection_sweep

router = APIRouter()


# ============================================================================
# Pydantic Schemas
# ============================================================================

class QuestionIn(BaseModel):
    text: str = Field(min_length=5, max_length=500)
    domain: Optional[str] = None
    order: Optional[int] = None


class RoastRequestCreate(BaseModel):
    title: str = Field(min_length=10, max_length=100)
    description: str = Field(min_length=50, max_length=1000)
    app_url: str
    target_audience: Optional[str] = Field(None, max_length=200)
    category: AppCategory = AppCategory.other
    feedback_mode: FeedbackMode = FeedbackMode.FREE
    focus_areas: List[str] = Field(default_factory=list)
    questions: List[QuestionIn] = Field(default_factory=list)
    feedbacks_requested: int = Field(ge=1)
    is_urgent: bool = False
    cover_image_url: Optional[str] = None
    additional_context: Optional[str] = Field(None, max_length=500)


class QuestionResponse(BaseModel):
    id: int
    domain: Optional[str]
    text: str
    order: int

    class Config:
        from_attributes = True


class SlotsResponse(BaseModel):
    requested: int
    filled: int
    remaining: int


class RoastRequestResponse(BaseModel):
    id: int
    creator_id: int
    title: str
    description: str
    app_url: str
    target_audience: Optional[str]
    category: AppCategory
    focus_areas: List[str]
    feedback_mode: FeedbackMode
    is_urgent: bool
    price_per_roaster: Decimal
    feedbacks_requested: int
    status: RoastRequestStatus
    cover_image_url: Optional[str]
    selection_deadline: Optional[datetime]
    selection_processed_at: Optional[datetime]
    created_at: datetime
    questions: List[QuestionResponse] = Field(default_factory=list)
    slots: SlotsResponse


class PricingQuoteRequest(BaseModel):
    feedback_mode: FeedbackMode
    question_count: int = 0
    roaster_count: int = 1
    is_urgent: bool = False


class PricingQuoteResponse(BaseModel):
    mode: FeedbackMode
    base_price: Decimal
    question_count: int
    free_questions: int
    billable_questions: int
    question_price: Decimal
    questions_cost: Decimal
    urgency_cost: Decimal
    per_roaster_total: Decimal
    roaster_count: int
    grand_total: Decimal
    is_urgent: bool
    labels: Dict[str, str]


class ApplicationCreate(BaseModel):
    motivation: Optional[str] = Field(None, max_length=500)


class ApplicationResponse(BaseModel):
    id: int
    roast_request_id: int
    roaster_id: int
    status: ApplicationStatus
    score: int
    motivation: Optional[str]
    created_at: datetime
    selected_at: Optional[datetime]

    class Config:
        from_attributes = True


class CancelResponse(BaseModel):
    roast_request: RoastRequestResponse
    rejected_applications: int


# ============================================================================
# Helpers
# ============================================================================

def _request_payload(db: Session, roast_request: RoastRequest) -> RoastRequestResponse:
    slots = roast_request_service.slot_summary(db, roast_request)
    return RoastRequestResponse(
        id=roast_request.id,
        creator_id=roast_request.creator_id,
        title=roast_request.title,
        description=roast_request.description,
        app_url=roast_request.app_url,
        target_audience=roast_request.target_audience,
        category=roast_request.category,
        focus_areas=list(roast_request.focus_areas or []),
        feedback_mode=roast_request.feedback_mode,
        is_urgent=bool(roast_request.is_urgent),
        price_per_roaster=roast_request.price_per_roaster,
        feedbacks_requested=roast_request.feedbacks_requested,
        status=roast_request.status,
        cover_image_url=roast_request.cover_image_url,
        selection_deadline=roast_request.selection_deadline,
        selection_processed_at=roast_request.selection_processed_at,
        created_at=roast_request.created_at,
        questions=[QuestionResponse.model_validate(q) for q in roast_request.questions],
        slots=SlotsResponse(**slots.as_dict()),
    )


# ============================================================================
# Pricing
# ============================================================================

@router.post("/pricing:quote", response_model=PricingQuoteResponse)
async def quote_pricing(data: PricingQuoteRequest):
    """Price a roast request before posting it."""
    try:
        breakdown = calculate_pricing(data.feedback_mode, data.question_count, data.roaster_count, data.is_urgent)
    except RoastError as exc:
        raise HTTPException(status_code=exc.http_status, detail=exc.as_detail())
    return PricingQuoteResponse(**breakdown.as_dict(), labels=format_pricing_breakdown(breakdown))


# ============================================================================
# Roast Request CRUD
# ============================================================================

@router.post("", response_model=RoastRequestResponse)
async def create_roast_request(
    data: RoastRequestCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Post a new roast request (creator role)."""
    def work(session: Session) -> RoastRequestResponse:
        roast_request = roast_request_service.create_roast_request(
            session,
            user.id,
            title=data.title,
            description=data.description,
            app_url=data.app_url,
            feedbacks_requested=data.feedbacks_requested,
            feedback_mode=data.feedback_mode,
            focus_areas=data.focus_areas,
            questions=[q.model_dump() for q in data.questions],
            is_urgent=data.is_urgent,
            target_audience=data.target_audience,
            category=data.category,
            cover_image_url=data.cover_image_url,
            additional_context=data.additional_context,
        )
        return _request_payload(session, roast_request)

    return await run_command(db, work)


@router.get("", response_model=List[RoastRequestResponse])
async def list_available_roast_requests(
    limit: int = Query(50),
    db: AsyncSession = Depends(get_db),
):
    """Marketplace: requests still taking applications."""
    def work(session: Session) -> List[RoastRequestResponse]:
        requests = roast_request_service.list_available_requests(session, limit=page_limit(limit))
        return [_request_payload(session, rr) for rr in requests]

    return await run_query(db, work)


@router.get("/mine", response_model=List[RoastRequestResponse])
async def list_my_roast_requests(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    def work(session: Session) -> List[RoastRequestResponse]:
        requests = roast_request_service.list_creator_requests(session, user.id)
        return [_request_payload(session, rr) for rr in requests]

    return await run_query(db, work)


@router.get("/{roast_request_id}", response_model=RoastRequestResponse)
async def get_roast_request(roast_request_id: int, db: AsyncSession = Depends(get_db)):
    def work(session: Session) -> RoastRequestResponse:
        return _request_payload(session, roast_request_service.get_roast_request(session, roast_request_id))

    return await run_query(db, work)


@router.post("/{roast_request_id}:cancel", response_model=CancelResponse)
async def cancel_roast_request(
    roast_request_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a request; pending applications are rejected and the sweep is called off."""
    def work(session: Session) -> CancelResponse:
        receipt = roast_request_service.cancel_roast_request(session, user.id, roast_request_id)
        return CancelResponse(
            roast_request=_request_payload(session, receipt.roast_request),
            rejected_applications=receipt.rejected_applications,
        )

    return await run_command(db, work)


@router.delete("/{roast_request_id}")
async def delete_roast_request(
    roast_request_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await run_command(
        db, lambda session: roast_request_service.delete_roast_request(session, user.id, roast_request_id)
    )
    return {"deleted": True}


# ============================================================================
# Applications on a request
# ============================================================================

@router.post("/{roast_request_id}/applications", response_model=ApplicationResponse)
async def apply_to_roast_request(
    roast_request_id: int,
    data: ApplicationCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Apply as a roaster. The first application opens the selection window."""
    def work(session: Session):
        receipt = intake.submit_application(session, user.id, roast_request_id, data.motivation)
        run_at = receipt.selection_job.run_at if receipt.selection_job is not None else None
        return ApplicationResponse.model_validate(receipt.application), run_at

    response, run_at = await run_command(db, work)
    if run_at is not None:
        schedule_selection_sweep(roast_request_id, run_at)
    return response


@router.get("/{roast_request_id}/applications", response_model=List[ApplicationResponse])
async def list_roast_request_applications(
    roast_request_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Applications for the creator, best score first."""
    def work(session: Session) -> List[ApplicationResponse]:
        applications = intake.list_request_applications(session, user.id, roast_request_id)
        return [ApplicationResponse.model_validate(app) for app in applications]

    return await run_query(db, work)


@router.get("/{roast_request_id}/applications/mine")
async def has_applied_to_roast_request(
    roast_request_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    applied = await run_query(db, lambda session: intake.has_applied(session, user.id, roast_request_id))
    return {"applied": applied}
