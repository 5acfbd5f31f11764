"""Application intake: roasters applying to roast requests."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from roastmyapp.config import get_settings
from roastmyapp.models.application import ApplicationStatus, RoastApplication, SELECTED_STATUSES
from roastmyapp.models.job import SelectionJob, SelectionJobState
from roastmyapp.models.roast_request import OPEN_FOR_APPLICATIONS, RoastRequest, RoastRequestStatus
from roastmyapp.models.user import User
from roastmyapp.services.errors import (
    AlreadyApplied,
    InvalidState,
    NoSlotsAvailable,
    NotFound,
    RequestClosed,
    ValidationError,
)
from roastmyapp.services.roast_requests import ensure_owner, get_roast_request, lock_roast_request, selected_count
from roastmyapp.services.roaster_stats import compute_roaster_stats
from roastmyapp.services.scoring import compute_application_score

logger = logging.getLogger(__name__)


@dataclass
class ApplicationReceipt:
    application: RoastApplication
    # Set only when this application opened the request's selection window
    selection_job: Optional[SelectionJob] = None


def open_selection_window(roast_request: RoastRequest, now: datetime) -> SelectionJob:
    """Move a request into collecting_applications and persist its sweep schedule."""
    deadline = now + timedelta(hours=get_settings().selection_window_hours)
    roast_request.status = RoastRequestStatus.collecting_applications
    roast_request.selection_deadline = deadline
    roast_request.selection_processed_at = None

    job = roast_request.selection_job
    if job is None:
        job = SelectionJob(run_at=deadline)
        roast_request.selection_job = job
    job.run_at = deadline
    job.state = SelectionJobState.scheduled
    job.attempts = 0
    job.last_error = None
    job.result_json = None
    job.started_at = None
    job.finished_at = None

    logger.info("Selection window opened for roast request %s until %s", roast_request.id, deadline.isoformat())
    return job


def submit_application(
    db: Session,
    roaster_id: int,
    roast_request_id: int,
    motivation: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ApplicationReceipt:
    now = now or datetime.utcnow()
    motivation = (motivation or "").strip() or None
    max_length = get_settings().motivation_max_length
    if motivation and len(motivation) > max_length:
        raise ValidationError(f"Motivation is too long (max {max_length} characters)")

    roaster = db.get(User, roaster_id)
    if roaster is None:
        raise NotFound("User not found", user_id=roaster_id)
    profile = roaster.roaster_profile
    if profile is None:
        raise InvalidState("A roaster profile is required to apply")

    roast_request = lock_roast_request(db, roast_request_id)
    if roast_request.creator_id == roaster_id:
        raise InvalidState("You cannot apply to your own roast request")

    # A pair applies once, whatever became of the request since
    existing = db.execute(
        select(RoastApplication.id).where(
            RoastApplication.roast_request_id == roast_request_id,
            RoastApplication.roaster_id == roaster_id,
        )
    ).first()
    if existing:
        raise AlreadyApplied(roast_request_id=roast_request_id)

    if roast_request.status not in OPEN_FOR_APPLICATIONS:
        raise RequestClosed(roast_request_id=roast_request_id, status=roast_request.status.value)

    if selected_count(db, roast_request_id) >= roast_request.feedbacks_requested:
        raise NoSlotsAvailable(roast_request_id=roast_request_id)

    stats = compute_roaster_stats(db, roaster_id)
    score, components = compute_application_score(
        specialties=profile.specialties or [],
        focus_areas=roast_request.focus_areas or [],
        experience=profile.experience.value if profile.experience else None,
        rating=stats.rating,
        level=stats.level,
        completion_rate=stats.completion_rate,
    )

    # First application opens the window; one after a lapsed, unfilled window re-arms it
    opens_window = (
        roast_request.status == RoastRequestStatus.open
        or roast_request.selection_processed_at is not None
    )

    application = RoastApplication(
        roast_request_id=roast_request_id,
        roaster_id=roaster_id,
        motivation=motivation,
        score=score,
        status=ApplicationStatus.pending,
        created_at=now,
    )
    db.add(application)
    try:
        # Unique (request, roaster) constraint backs the check above under concurrency
        db.flush()
    except IntegrityError:
        raise AlreadyApplied(roast_request_id=roast_request_id)

    job = None
    if opens_window:
        job = open_selection_window(roast_request, now)
        db.flush()

    logger.info(
        "Roaster %s applied to roast request %s with score %s %s",
        roaster_id, roast_request_id, score, components,
    )
    return ApplicationReceipt(application=application, selection_job=job)


def withdraw_application(db: Session, roaster_id: int, application_id: int) -> None:
    application = db.get(RoastApplication, application_id)
    if application is None:
        raise NotFound("Application not found", application_id=application_id)
    if application.roaster_id != roaster_id:
        raise NotFound("Application not found", application_id=application_id)

    lock_roast_request(db, application.roast_request_id)
    if application.status != ApplicationStatus.pending:
        raise InvalidState(
            f"Application is already {application.status.value}",
            application_id=application_id,
        )

    db.delete(application)
    db.flush()
    logger.info("Roaster %s withdrew application %s", roaster_id, application_id)


def has_applied(db: Session, roaster_id: int, roast_request_id: int) -> bool:
    return db.execute(
        select(RoastApplication.id).where(
            RoastApplication.roast_request_id == roast_request_id,
            RoastApplication.roaster_id == roaster_id,
        )
    ).first() is not None


def list_request_applications(db: Session, creator_id: int, roast_request_id: int) -> List[RoastApplication]:
    roast_request = get_roast_request(db, roast_request_id)
    ensure_owner(roast_request, creator_id)
    result = db.execute(
        select(RoastApplication)
        .where(RoastApplication.roast_request_id == roast_request_id)
        .order_by(RoastApplication.score.desc(), RoastApplication.created_at.asc(), RoastApplication.id.asc())
    )
    return list(result.scalars().all())


def list_accepted_applications(db: Session, roaster_id: int) -> List[RoastApplication]:
    result = db.execute(
        select(RoastApplication)
        .where(
            RoastApplication.roaster_id == roaster_id,
            RoastApplication.status.in_(SELECTED_STATUSES),
        )
        .options(selectinload(RoastApplication.roast_request), selectinload(RoastApplication.feedback))
        .order_by(RoastApplication.selected_at.desc())
    )
    return list(result.scalars().all())
