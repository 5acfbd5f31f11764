import random
from datetime import datetime, timedelta

import pytest

from roastmyapp.models import (
    ApplicationStatus,
    Feedback,
    RoastApplication,
    FeedbackStatus,
    RoastRequestStatus,
    SelectionJobState,
)
from roastmyapp.services.errors import InvalidState, NoSlotsAvailable, NotOwner, StateConflict
from roastmyapp.services.roast_requests import selected_count
from roastmyapp.services.selection import auto_select, reject_application, select_application

NOW = datetime(2026, 3, 2, 9, 0, 0)


def test_select_application_fills_a_slot_and_opens_a_draft(db, collecting_request):
    roast_request, applications = collecting_request([80, 70], feedbacks_requested=2)

    selected = select_application(db, roast_request.creator_id, applications[0].id, now=NOW)

    assert selected.status == ApplicationStatus.accepted
    assert selected.selected_at == NOW
    feedback = db.query(Feedback).filter_by(application_id=selected.id).one()
    assert feedback.status == FeedbackStatus.draft
    assert feedback.final_price == roast_request.price_per_roaster
    assert roast_request.status == RoastRequestStatus.collecting_applications


def test_last_manual_selection_staffs_the_request(db, collecting_request):
    roast_request, applications = collecting_request([80, 70, 60], feedbacks_requested=2)

    select_application(db, roast_request.creator_id, applications[2].id, now=NOW)
    select_application(db, roast_request.creator_id, applications[0].id, now=NOW)

    assert roast_request.status == RoastRequestStatus.in_progress
    assert applications[1].status == ApplicationStatus.rejected
    assert roast_request.selection_job.state == SelectionJobState.completed
    assert roast_request.selection_job.result_json["filled_by"] == "manual"


def test_only_the_owner_can_decide(db, collecting_request, make_creator):
    roast_request, applications = collecting_request([80])
    stranger = make_creator()

    with pytest.raises(NotOwner):
        select_application(db, stranger.id, applications[0].id, now=NOW)
    with pytest.raises(NotOwner):
        reject_application(db, stranger.id, applications[0].id, now=NOW)


def test_decided_applications_cannot_be_selected_again(db, collecting_request):
    roast_request, applications = collecting_request([80, 70], feedbacks_requested=2)
    select_application(db, roast_request.creator_id, applications[0].id, now=NOW)

    with pytest.raises(InvalidState):
        select_application(db, roast_request.creator_id, applications[0].id, now=NOW)

    reject_application(db, roast_request.creator_id, applications[1].id, now=NOW)
    with pytest.raises(InvalidState):
        select_application(db, roast_request.creator_id, applications[1].id, now=NOW)


def test_select_on_an_open_request_is_refused(db, make_request, make_roaster):
    roast_request = make_request()
    application = RoastApplication(roast_request_id=roast_request.id, roaster_id=make_roaster().id, score=50)
    db.add(application)
    db.flush()

    with pytest.raises(InvalidState):
        select_application(db, roast_request.creator_id, application.id, now=NOW)


def test_select_with_no_free_slot_raises(db, collecting_request):
    roast_request, applications = collecting_request([80, 70], feedbacks_requested=1)
    # Slot taken behind the request's back, status not yet updated
    applications[0].status = ApplicationStatus.auto_selected
    db.flush()

    with pytest.raises(NoSlotsAvailable):
        select_application(db, roast_request.creator_id, applications[1].id, now=NOW)


def test_reject_application(db, collecting_request):
    roast_request, applications = collecting_request([80])

    rejected = reject_application(db, roast_request.creator_id, applications[0].id, now=NOW)

    assert rejected.status == ApplicationStatus.rejected
    assert rejected.decided_at == NOW
    assert roast_request.status == RoastRequestStatus.collecting_applications


def test_interleaved_manual_and_auto_selection_never_overfill(db, collecting_request):
    rng = random.Random(20260302)
    for round_number in range(5):
        slots = rng.randint(1, 4)
        scores = [rng.randint(0, 100) for _ in range(rng.randint(slots, slots + 5))]
        roast_request, applications = collecting_request(scores, feedbacks_requested=slots)
        db.commit()

        operations = [("select", app.id) for app in applications] + [("auto", None)] * 2
        rng.shuffle(operations)
        for kind, application_id in operations:
            try:
                if kind == "select":
                    select_application(db, roast_request.creator_id, application_id, now=NOW)
                else:
                    auto_select(db, roast_request.id, now=NOW + timedelta(minutes=round_number))
                db.commit()
            except StateConflict:
                db.rollback()
            assert selected_count(db, roast_request.id) <= slots

        db.refresh(roast_request)
        assert selected_count(db, roast_request.id) == min(slots, len(scores))
        assert roast_request.status == RoastRequestStatus.in_progress
