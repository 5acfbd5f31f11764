"""Application API routes - creator decisions and roaster withdrawals."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from roastmyapp.api.deps import get_current_user, run_command, run_query
from roastmyapp.api.roast_requests import ApplicationResponse
from roastmyapp.models.base import get_db
from roastmyapp.models.feedback import FeedbackStatus
from roastmyapp.models.roast_request import RoastRequestStatus
from roastmyapp.models.user import User
from roastmyapp.services import intake, selection

router = APIRouter()


class AcceptedApplicationResponse(BaseModel):
    application: ApplicationResponse
    roast_request_title: str
    roast_request_status: RoastRequestStatus
    price_per_roaster: Decimal
    feedback_id: Optional[int]
    feedback_status: Optional[FeedbackStatus]
    selected_at: Optional[datetime]


@router.post("/{application_id}:select", response_model=ApplicationResponse)
async def select_application(
    application_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Accept a pending application; fills one slot and opens a draft feedback."""
    def work(session: Session) -> ApplicationResponse:
        application = selection.select_application(session, user.id, application_id)
        return ApplicationResponse.model_validate(application)

    return await run_command(db, work)


@router.post("/{application_id}:reject", response_model=ApplicationResponse)
async def reject_application(
    application_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    def work(session: Session) -> ApplicationResponse:
        application = selection.reject_application(session, user.id, application_id)
        return ApplicationResponse.model_validate(application)

    return await run_command(db, work)


@router.delete("/{application_id}")
async def withdraw_application(
    application_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Withdraw an application that is still pending."""
    await run_command(db, lambda session: intake.withdraw_application(session, user.id, application_id))
    return {"withdrawn": True}


@router.get("/accepted", response_model=List[AcceptedApplicationResponse])
async def list_accepted_applications(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    def work(session: Session) -> List[AcceptedApplicationResponse]:
        payload = []
        for application in intake.list_accepted_applications(session, user.id):
            feedback = application.feedback
            payload.append(AcceptedApplicationResponse(
                application=ApplicationResponse.model_validate(application),
                roast_request_title=application.roast_request.title,
                roast_request_status=application.roast_request.status,
                price_per_roaster=application.roast_request.price_per_roaster,
                feedback_id=feedback.id if feedback else None,
                feedback_status=feedback.status if feedback else None,
                selected_at=application.selected_at,
            ))
        return payload

    return await run_query(db, work)
