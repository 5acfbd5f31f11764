"""Roaster selection: manual choices by the creator and the deadline auto-selector.

All slot checks run under the roast request row lock taken by
``lock_roast_request`` so accepted + auto_selected never exceeds
``feedbacks_requested``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from roastmyapp.models.application import ApplicationStatus, RoastApplication
from roastmyapp.models.job import SelectionJobState
from roastmyapp.models.roast_request import RoastRequest, RoastRequestStatus
from roastmyapp.services.errors import InvalidState, NoSlotsAvailable, NotFound
from roastmyapp.services.feedback import create_draft_feedback
from roastmyapp.services.roast_requests import (
    ensure_owner,
    lock_roast_request,
    slot_summary,
)

logger = logging.getLogger(__name__)


@dataclass
class SelectionOutcome:
    roast_request_id: int
    selected_application_ids: List[int] = field(default_factory=list)
    rejected_application_ids: List[int] = field(default_factory=list)
    skipped_reason: Optional[str] = None
    request_status: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "roast_request_id": self.roast_request_id,
            "selected_application_ids": self.selected_application_ids,
            "rejected_application_ids": self.rejected_application_ids,
            "skipped_reason": self.skipped_reason,
            "request_status": self.request_status,
        }


def rank_applications(applications: List[RoastApplication]) -> List[RoastApplication]:
    """Score descending, earliest submission first on ties, then id."""
    return sorted(
        applications,
        key=lambda app: (-int(app.score or 0), app.created_at or datetime.min, app.id or 0),
    )


def _load_pending(db: Session, roast_request_id: int) -> List[RoastApplication]:
    result = db.execute(
        select(RoastApplication)
        .where(
            RoastApplication.roast_request_id == roast_request_id,
            RoastApplication.status == ApplicationStatus.pending,
        )
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def _close_selection_job(roast_request: RoastRequest, now: datetime, result: Dict[str, Any]) -> None:
    job = roast_request.selection_job
    if job is None or job.state in (SelectionJobState.completed, SelectionJobState.cancelled):
        return
    job.state = SelectionJobState.completed
    job.finished_at = now
    job.result_json = result


def _mark_fully_staffed(db: Session, roast_request: RoastRequest, now: datetime) -> List[int]:
    """Reject leftover pending applications and start the roast."""
    leftovers = _load_pending(db, roast_request.id)
    for application in leftovers:
        application.status = ApplicationStatus.rejected
        application.decided_at = now
    roast_request.status = RoastRequestStatus.in_progress
    logger.info(
        "Roast request %s fully staffed, %s leftover applications rejected",
        roast_request.id, len(leftovers),
    )
    return [application.id for application in leftovers]


def _lock_application(db: Session, application_id: int) -> tuple[RoastApplication, RoastRequest]:
    application = db.get(RoastApplication, application_id)
    if application is None:
        raise NotFound("Application not found", application_id=application_id)
    roast_request = lock_roast_request(db, application.roast_request_id)
    # Re-read under the lock: another transaction may have decided it meanwhile
    db.refresh(application)
    return application, roast_request


def select_application(
    db: Session,
    creator_id: int,
    application_id: int,
    now: Optional[datetime] = None,
) -> RoastApplication:
    now = now or datetime.utcnow()
    application, roast_request = _lock_application(db, application_id)
    ensure_owner(roast_request, creator_id)

    if application.status != ApplicationStatus.pending:
        raise InvalidState(
            f"Application is already {application.status.value}",
            application_id=application_id,
        )
    if roast_request.status != RoastRequestStatus.collecting_applications:
        raise InvalidState(
            f"Roast request is {roast_request.status.value}",
            roast_request_id=roast_request.id,
        )

    slots = slot_summary(db, roast_request)
    if slots.remaining <= 0:
        raise NoSlotsAvailable(roast_request_id=roast_request.id)

    application.status = ApplicationStatus.accepted
    application.selected_at = now
    application.decided_at = now
    create_draft_feedback(db, roast_request, application, now)

    if slots.remaining == 1:
        rejected_ids = _mark_fully_staffed(db, roast_request, now)
        _close_selection_job(
            roast_request,
            now,
            {"filled_by": "manual", "rejected_application_ids": rejected_ids},
        )
    db.flush()

    logger.info(
        "Application %s accepted for roast request %s (%s/%s slots)",
        application_id, roast_request.id, slots.filled + 1, slots.requested,
    )
    return application


def reject_application(
    db: Session,
    creator_id: int,
    application_id: int,
    now: Optional[datetime] = None,
) -> RoastApplication:
    now = now or datetime.utcnow()
    application, roast_request = _lock_application(db, application_id)
    ensure_owner(roast_request, creator_id)

    if application.status != ApplicationStatus.pending:
        raise InvalidState(
            f"Application is already {application.status.value}",
            application_id=application_id,
        )

    application.status = ApplicationStatus.rejected
    application.decided_at = now
    db.flush()
    logger.info("Application %s rejected for roast request %s", application_id, roast_request.id)
    return application


def auto_select(db: Session, roast_request_id: int, now: Optional[datetime] = None) -> SelectionOutcome:
    """Resolve a lapsed selection window by promoting the best pending applications.

    Safe to run any number of times: the request state is re-derived under the
    row lock, and a request whose deadline was already processed is left as is.
    """
    now = now or datetime.utcnow()
    roast_request = lock_roast_request(db, roast_request_id)
    outcome = SelectionOutcome(roast_request_id=roast_request_id, request_status=roast_request.status.value)

    if roast_request.selection_processed_at is not None:
        outcome.skipped_reason = "already_processed"
        return outcome
    if roast_request.status != RoastRequestStatus.collecting_applications:
        outcome.skipped_reason = f"status_{roast_request.status.value}"
        return outcome
    deadline = roast_request.selection_deadline
    if deadline is None or now < deadline:
        outcome.skipped_reason = "not_due"
        return outcome

    slots = slot_summary(db, roast_request)
    ranked = rank_applications(_load_pending(db, roast_request_id))
    promoted = ranked[: slots.remaining]

    for application in promoted:
        application.status = ApplicationStatus.auto_selected
        application.selected_at = deadline
        application.decided_at = now
        create_draft_feedback(db, roast_request, application, now)
    outcome.selected_application_ids = [application.id for application in promoted]

    if slots.filled + len(promoted) >= slots.requested:
        outcome.rejected_application_ids = _mark_fully_staffed(db, roast_request, now)

    roast_request.selection_processed_at = now
    outcome.request_status = roast_request.status.value
    _close_selection_job(roast_request, now, {"filled_by": "auto", **outcome.as_dict()})
    db.flush()

    if not ranked:
        logger.warning("Selection window lapsed for roast request %s with no pending applications", roast_request_id)
    logger.info(
        "Auto-selection for roast request %s: %s selected, %s rejected, status %s",
        roast_request_id,
        len(outcome.selected_application_ids),
        len(outcome.rejected_application_ids),
        outcome.request_status,
    )
    return outcome
