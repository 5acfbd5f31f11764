"""Feedback lifecycle: draft -> pending -> completed, then a one-time creator rating.

A rating is stored as one row per rated focus area (or a single row without a
domain); the feedback keeps their rounded mean as ``creator_rating``.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from roastmyapp.models.application import RoastApplication
from roastmyapp.models.feedback import Feedback, FeedbackRating, FeedbackStatus
from roastmyapp.models.roast_request import RoastRequest, RoastRequestStatus
from roastmyapp.services.errors import InvalidState, NotFound, NotOwner, ValidationError
from roastmyapp.services.roast_requests import lock_roast_request, selected_count

logger = logging.getLogger(__name__)

CONTENT_FIELDS = (
    "first_impression",
    "strengths",
    "weaknesses",
    "recommendations",
    "question_responses",
    "additional_comments",
)


def create_draft_feedback(
    db: Session,
    roast_request: RoastRequest,
    application: RoastApplication,
    now: datetime,
) -> Feedback:
    """Open the deliverable for a freshly selected application."""
    feedback = Feedback(
        roast_request_id=roast_request.id,
        application_id=application.id,
        roaster_id=application.roaster_id,
        status=FeedbackStatus.draft,
        final_price=roast_request.price_per_roaster,
        strengths=[],
        weaknesses=[],
        recommendations=[],
        question_responses={},
        created_at=now,
    )
    db.add(feedback)
    return feedback


def _clean_list(values: Any) -> List[str]:
    if not values:
        return []
    return [str(value).strip() for value in values if str(value).strip()]


def _apply_content(feedback: Feedback, content: Dict[str, Any]) -> None:
    for field in CONTENT_FIELDS:
        if field not in content or content[field] is None:
            continue
        value = content[field]
        if field in ("strengths", "weaknesses", "recommendations"):
            value = _clean_list(value)
        elif field == "question_responses":
            value = {str(key): str(answer).strip() for key, answer in dict(value).items() if str(answer).strip()}
        else:
            value = str(value).strip() or None
        setattr(feedback, field, value)


def _validate_submission(feedback: Feedback) -> None:
    errors: List[str] = []
    if len((feedback.first_impression or "").strip()) < 10:
        errors.append("first impression must be at least 10 characters")
    if not feedback.strengths:
        errors.append("at least one strength is required")
    if not feedback.weaknesses:
        errors.append("at least one weakness is required")
    if not feedback.recommendations:
        errors.append("at least one recommendation is required")
    if errors:
        raise ValidationError("; ".join(errors), errors=errors)


def _get_roaster_feedback(db: Session, roaster_id: int, feedback_id: int) -> Feedback:
    feedback = db.get(Feedback, feedback_id)
    if feedback is None or feedback.roaster_id != roaster_id:
        raise NotFound("Feedback not found", feedback_id=feedback_id)
    return feedback


def _get_creator_feedback(db: Session, creator_id: int, feedback_id: int) -> Feedback:
    feedback = db.get(Feedback, feedback_id)
    if feedback is None:
        raise NotFound("Feedback not found", feedback_id=feedback_id)
    if feedback.roast_request.creator_id != creator_id:
        raise NotOwner(feedback_id=feedback_id)
    return feedback


def save_feedback_draft(db: Session, roaster_id: int, feedback_id: int, content: Dict[str, Any]) -> Feedback:
    feedback = _get_roaster_feedback(db, roaster_id, feedback_id)
    if feedback.status != FeedbackStatus.draft:
        raise InvalidState("Only draft feedbacks can be edited", feedback_id=feedback_id)
    _apply_content(feedback, content)
    db.flush()
    return feedback


def submit_feedback(
    db: Session,
    roaster_id: int,
    feedback_id: int,
    content: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Feedback:
    now = now or datetime.utcnow()
    feedback = _get_roaster_feedback(db, roaster_id, feedback_id)
    if feedback.status != FeedbackStatus.draft:
        raise InvalidState("Feedback was already submitted", feedback_id=feedback_id)
    if feedback.roast_request.status == RoastRequestStatus.cancelled:
        raise InvalidState("Roast request was cancelled", feedback_id=feedback_id)

    _apply_content(feedback, content or {})
    _validate_submission(feedback)

    feedback.status = FeedbackStatus.pending
    feedback.submitted_at = now
    db.flush()
    logger.info("Feedback %s submitted by roaster %s", feedback_id, roaster_id)
    return feedback


def complete_feedback(
    db: Session,
    creator_id: int,
    feedback_id: int,
    now: Optional[datetime] = None,
) -> Feedback:
    now = now or datetime.utcnow()
    feedback = _get_creator_feedback(db, creator_id, feedback_id)
    roast_request = lock_roast_request(db, feedback.roast_request_id)
    # Re-read under the lock: a concurrent completion may have won
    db.refresh(feedback)
    if feedback.status != FeedbackStatus.pending:
        raise InvalidState(
            f"Only pending feedbacks can be completed (status: {feedback.status.value})",
            feedback_id=feedback_id,
        )

    feedback.status = FeedbackStatus.completed
    feedback.completed_at = now
    db.flush()

    if roast_request.status == RoastRequestStatus.in_progress:
        open_feedbacks = db.execute(
            select(func.count(Feedback.id)).where(
                Feedback.roast_request_id == roast_request.id,
                Feedback.status != FeedbackStatus.completed,
            )
        ).scalar() or 0
        if not open_feedbacks and selected_count(db, roast_request.id) >= roast_request.feedbacks_requested:
            roast_request.status = RoastRequestStatus.completed
            db.flush()
            logger.info("Roast request %s completed", roast_request.id)

    logger.info("Feedback %s completed for roast request %s", feedback_id, roast_request.id)
    return feedback


def _valid_score(value: Any) -> bool:
    # bool is an int subclass; True must not pass as a 1
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 5


def _clean_ratings(ratings: Sequence[Dict[str, Any]]) -> List[Tuple[Optional[str], int, Optional[str]]]:
    if not ratings:
        raise ValidationError("At least one rating is required")
    cleaned: List[Tuple[Optional[str], int, Optional[str]]] = []
    seen = set()
    for entry in ratings:
        overall = entry.get("overall")
        if not _valid_score(overall):
            raise ValidationError("Rating must be an integer between 1 and 5", rating=overall)
        domain = str(entry.get("domain") or "").strip() or None
        if domain in seen:
            raise ValidationError("Each domain can be rated only once", domain=domain)
        seen.add(domain)
        comment = str(entry.get("comment") or "").strip() or None
        cleaned.append((domain, overall, comment))
    return cleaned


def submit_feedback_ratings(
    db: Session,
    creator_id: int,
    feedback_id: int,
    ratings: Sequence[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> Feedback:
    """Rate a completed feedback once, as a whole or per focus area.

    Each entry carries ``overall`` (1-5) and optionally ``domain`` and
    ``comment``. ``creator_rating`` becomes the mean of the overall scores,
    rounded half up.
    """
    cleaned = _clean_ratings(ratings)
    now = now or datetime.utcnow()
    feedback = _get_creator_feedback(db, creator_id, feedback_id)
    lock_roast_request(db, feedback.roast_request_id)
    db.refresh(feedback)
    if feedback.status != FeedbackStatus.completed:
        raise InvalidState("Only completed feedbacks can be rated", feedback_id=feedback_id)
    if feedback.creator_rating is not None:
        raise InvalidState("Feedback was already rated", feedback_id=feedback_id)

    focus_areas = feedback.roast_request.focus_areas or []
    unknown = [domain for domain, _, _ in cleaned if domain is not None and domain not in focus_areas]
    if unknown:
        raise ValidationError("Ratings can only target the request's focus areas", domains=unknown)

    for domain, overall, comment in cleaned:
        db.add(FeedbackRating(feedback=feedback, domain=domain, overall=overall, comment=comment, created_at=now))
    mean = Decimal(sum(overall for _, overall, _ in cleaned)) / len(cleaned)
    feedback.creator_rating = int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    feedback.rated_at = now
    db.flush()

    logger.info(
        "Feedback %s rated %s by creator %s (%s ratings)",
        feedback_id, feedback.creator_rating, creator_id, len(cleaned),
    )
    return feedback


def rate_feedback(
    db: Session,
    creator_id: int,
    feedback_id: int,
    rating: int,
    now: Optional[datetime] = None,
) -> Feedback:
    return submit_feedback_ratings(db, creator_id, feedback_id, [{"domain": None, "overall": rating}], now=now)


def list_feedback_ratings(db: Session, user_id: int, feedback_id: int) -> List[FeedbackRating]:
    """Ratings of a feedback, overall first, visible to its creator and its roaster."""
    feedback = db.get(Feedback, feedback_id)
    if feedback is None or user_id not in (feedback.roaster_id, feedback.roast_request.creator_id):
        raise NotFound("Feedback not found", feedback_id=feedback_id)
    result = db.execute(
        select(FeedbackRating)
        .where(FeedbackRating.feedback_id == feedback_id)
        .order_by(FeedbackRating.domain.is_not(None), FeedbackRating.domain.asc(), FeedbackRating.id.asc())
    )
    return list(result.scalars().all())


def list_roaster_feedbacks(db: Session, roaster_id: int) -> List[Feedback]:
    result = db.execute(
        select(Feedback)
        .where(Feedback.roaster_id == roaster_id)
        .options(selectinload(Feedback.roast_request))
        .order_by(Feedback.created_at.desc(), Feedback.id.desc())
    )
    return list(result.scalars().all())
