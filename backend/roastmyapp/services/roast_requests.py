"""Roast request lifecycle: creation, listing, slot accounting, cancellation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from roastmyapp.config import get_settings
from roastmyapp.models.application import ApplicationStatus, RoastApplication, SELECTED_STATUSES
from roastmyapp.models.feedback import Feedback
from roastmyapp.models.job import SelectionJobState
from roastmyapp.models.roast_request import (
    AppCategory,
    FeedbackMode,
    OPEN_FOR_APPLICATIONS,
    RoastQuestion,
    RoastRequest,
    RoastRequestStatus,
    TERMINAL_REQUEST_STATUSES,
)
from roastmyapp.models.user import User, UserRole
from roastmyapp.services.errors import InvalidState, NotFound, NotOwner, ValidationError
from roastmyapp.services.pricing import calculate_pricing

logger = logging.getLogger(__name__)


@dataclass
class SlotSummary:
    requested: int
    filled: int

    @property
    def remaining(self) -> int:
        return max(0, self.requested - self.filled)

    def as_dict(self) -> Dict[str, int]:
        return {"requested": self.requested, "filled": self.filled, "remaining": self.remaining}


@dataclass
class CancelReceipt:
    roast_request: RoastRequest
    rejected_applications: int


def get_roast_request(db: Session, roast_request_id: int) -> RoastRequest:
    roast_request = db.get(RoastRequest, roast_request_id)
    if roast_request is None:
        raise NotFound("Roast request not found", roast_request_id=roast_request_id)
    return roast_request


def lock_roast_request(db: Session, roast_request_id: int) -> RoastRequest:
    """Load a roast request holding its row lock for the rest of the transaction.

    Every check-and-update on slot occupancy goes through this lock so two
    concurrent selections cannot both see the same free slot.
    """
    roast_request = db.execute(
        select(RoastRequest)
        .where(RoastRequest.id == roast_request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if roast_request is None:
        raise NotFound("Roast request not found", roast_request_id=roast_request_id)
    return roast_request


def selected_count(db: Session, roast_request_id: int) -> int:
    return db.execute(
        select(func.count(RoastApplication.id)).where(
            RoastApplication.roast_request_id == roast_request_id,
            RoastApplication.status.in_(SELECTED_STATUSES),
        )
    ).scalar() or 0


def slot_summary(db: Session, roast_request: RoastRequest) -> SlotSummary:
    return SlotSummary(
        requested=int(roast_request.feedbacks_requested),
        filled=int(selected_count(db, roast_request.id)),
    )


def ensure_owner(roast_request: RoastRequest, creator_id: int) -> None:
    if roast_request.creator_id != creator_id:
        raise NotOwner(roast_request_id=roast_request.id)


def _validate_request_fields(
    *,
    title: str,
    description: str,
    app_url: str,
    feedbacks_requested: int,
    feedback_mode: FeedbackMode,
    focus_areas: Sequence[str],
    questions: Sequence[Dict[str, Any]],
) -> None:
    settings = get_settings()
    errors: List[str] = []
    if not 10 <= len(title.strip()) <= 100:
        errors.append("title must be 10-100 characters")
    if not 50 <= len(description.strip()) <= 1000:
        errors.append("description must be 50-1000 characters")
    if not app_url.startswith(("http://", "https://")):
        errors.append("app_url must be an http(s) URL")
    if not 1 <= feedbacks_requested <= settings.max_feedbacks_requested:
        errors.append(f"feedbacks_requested must be between 1 and {settings.max_feedbacks_requested}")
    if feedback_mode == FeedbackMode.STRUCTURED and not focus_areas:
        errors.append("STRUCTURED mode needs at least one focus area")
    if feedback_mode == FeedbackMode.FREE and questions:
        errors.append("FREE mode does not take questions")
    for question in questions:
        if len(str(question.get("text") or "").strip()) < 5:
            errors.append("questions must be at least 5 characters")
            break
    if errors:
        raise ValidationError("; ".join(errors), errors=errors)


def create_roast_request(
    db: Session,
    creator_id: int,
    *,
    title: str,
    description: str,
    app_url: str,
    feedbacks_requested: int,
    feedback_mode: FeedbackMode = FeedbackMode.FREE,
    focus_areas: Optional[Iterable[str]] = None,
    questions: Optional[Iterable[Dict[str, Any]]] = None,
    is_urgent: bool = False,
    target_audience: Optional[str] = None,
    category: AppCategory = AppCategory.other,
    cover_image_url: Optional[str] = None,
    additional_context: Optional[str] = None,
) -> RoastRequest:
    focus = [str(area).strip() for area in (focus_areas or []) if str(area).strip()]
    question_rows = list(questions or [])
    _validate_request_fields(
        title=title,
        description=description,
        app_url=app_url,
        feedbacks_requested=feedbacks_requested,
        feedback_mode=feedback_mode,
        focus_areas=focus,
        questions=question_rows,
    )

    creator = db.get(User, creator_id)
    if creator is None:
        raise NotFound("User not found", user_id=creator_id)
    if creator.creator_profile is None:
        raise InvalidState("A creator profile is required to post a roast request")
    if creator.primary_role != UserRole.creator:
        raise InvalidState("Switch to the creator role to post a roast request")

    pricing = calculate_pricing(feedback_mode, len(question_rows), feedbacks_requested, is_urgent)

    roast_request = RoastRequest(
        creator_id=creator_id,
        title=title.strip(),
        description=description.strip(),
        app_url=app_url,
        target_audience=target_audience,
        category=category,
        focus_areas=focus,
        cover_image_url=cover_image_url,
        additional_context=additional_context,
        feedback_mode=feedback_mode,
        is_urgent=is_urgent,
        price_per_roaster=pricing.per_roaster_total,
        feedbacks_requested=feedbacks_requested,
        status=RoastRequestStatus.open,
    )
    for index, question in enumerate(question_rows):
        roast_request.questions.append(
            RoastQuestion(
                domain=question.get("domain"),
                text=str(question["text"]).strip(),
                order=int(question.get("order", index)),
                is_default=bool(question.get("is_default", False)),
            )
        )
    db.add(roast_request)
    db.flush()

    logger.info(
        "Roast request %s created by user %s (%s, %s slots at %s)",
        roast_request.id, creator_id, feedback_mode.value, feedbacks_requested, pricing.per_roaster_total,
    )
    return roast_request


def list_available_requests(db: Session, limit: int = 50) -> List[RoastRequest]:
    result = db.execute(
        select(RoastRequest)
        .where(RoastRequest.status.in_(OPEN_FOR_APPLICATIONS))
        .order_by(RoastRequest.created_at.desc(), RoastRequest.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


def list_creator_requests(db: Session, creator_id: int) -> List[RoastRequest]:
    result = db.execute(
        select(RoastRequest)
        .where(RoastRequest.creator_id == creator_id)
        .options(selectinload(RoastRequest.questions))
        .order_by(RoastRequest.created_at.desc(), RoastRequest.id.desc())
    )
    return list(result.scalars().all())


def reject_pending_applications(db: Session, roast_request_id: int, now: datetime) -> int:
    """Reject every pending application of a request. Returns how many were rejected."""
    pending = db.execute(
        select(RoastApplication).where(
            RoastApplication.roast_request_id == roast_request_id,
            RoastApplication.status == ApplicationStatus.pending,
        )
    ).scalars().all()
    for application in pending:
        application.status = ApplicationStatus.rejected
        application.decided_at = now
    return len(pending)


def cancel_roast_request(
    db: Session,
    creator_id: int,
    roast_request_id: int,
    now: Optional[datetime] = None,
) -> CancelReceipt:
    now = now or datetime.utcnow()
    roast_request = lock_roast_request(db, roast_request_id)
    ensure_owner(roast_request, creator_id)
    if roast_request.status in TERMINAL_REQUEST_STATUSES:
        raise InvalidState(
            f"Roast request is already {roast_request.status.value}",
            roast_request_id=roast_request_id,
        )

    rejected = reject_pending_applications(db, roast_request_id, now)

    job = roast_request.selection_job
    if job is not None and job.state == SelectionJobState.scheduled:
        job.state = SelectionJobState.cancelled
        job.finished_at = now

    roast_request.status = RoastRequestStatus.cancelled
    db.flush()

    logger.info("Roast request %s cancelled, %s pending applications rejected", roast_request_id, rejected)
    return CancelReceipt(roast_request=roast_request, rejected_applications=rejected)


def delete_roast_request(db: Session, creator_id: int, roast_request_id: int) -> None:
    roast_request = lock_roast_request(db, roast_request_id)
    ensure_owner(roast_request, creator_id)

    has_feedbacks = db.execute(
        select(Feedback.id).where(Feedback.roast_request_id == roast_request_id).limit(1)
    ).first()
    if has_feedbacks:
        raise InvalidState("Cannot delete a roast request that already has feedbacks")

    db.delete(roast_request)
    db.flush()
    logger.info("Roast request %s deleted by user %s", roast_request_id, creator_id)
