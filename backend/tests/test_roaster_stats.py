from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from roastmyapp.models import ApplicationStatus, Feedback, FeedbackRating, FeedbackStatus, RoastApplication
from roastmyapp.services.errors import ValidationError
from roastmyapp.services.roaster_stats import (
    completion_rate,
    compute_period_stats,
    compute_roaster_stats,
    level_for_completed,
    period_start,
)

NOW = datetime(2026, 3, 31, 12, 0, 0)


def test_level_thresholds():
    assert level_for_completed(0) == "rookie"
    assert level_for_completed(4) == "rookie"
    assert level_for_completed(5) == "verified"
    assert level_for_completed(19) == "verified"
    assert level_for_completed(20) == "expert"
    assert level_for_completed(50) == "master"
    assert level_for_completed(500) == "master"


def test_level_with_custom_steps():
    assert level_for_completed(3, steps=[("pro", 3)]) == "pro"


def test_completion_rate_defaults_to_full_without_selections():
    assert completion_rate(0, 0) == 100
    assert completion_rate(1, 3) == 33
    assert completion_rate(3, 3) == 100


def _selected_with_feedback(db, roast_request, roaster, status, rating=None, price="3.00", completed_at=None):
    application = RoastApplication(
        roast_request_id=roast_request.id,
        roaster_id=roaster.id,
        status=ApplicationStatus.accepted,
        score=50,
    )
    db.add(application)
    db.flush()
    feedback = Feedback(
        roast_request_id=roast_request.id,
        application_id=application.id,
        roaster_id=roaster.id,
        status=status,
        final_price=Decimal(price),
        creator_rating=rating,
        completed_at=completed_at,
    )
    db.add(feedback)
    db.flush()
    return feedback


def test_stats_are_aggregated_from_rows(db, make_roaster, make_request):
    roaster = make_roaster()
    _selected_with_feedback(db, make_request(), roaster, FeedbackStatus.completed, rating=5, price="3.00")
    _selected_with_feedback(db, make_request(), roaster, FeedbackStatus.completed, rating=4, price="2.50")
    _selected_with_feedback(db, make_request(), roaster, FeedbackStatus.completed, rating=None, price="2.00")
    _selected_with_feedback(db, make_request(), roaster, FeedbackStatus.draft)

    stats = compute_roaster_stats(db, roaster.id)

    assert stats.completed_roasts == 3
    assert stats.total_earned == Decimal("7.50")
    assert stats.rating == 4.5
    assert stats.ratings_count == 2
    assert stats.level == "rookie"
    assert stats.completion_rate == 75
    assert stats.current_active == 1


def test_stats_for_a_new_roaster(db, make_roaster):
    stats = compute_roaster_stats(db, make_roaster().id)
    assert stats.as_dict() == {
        "roaster_id": stats.roaster_id,
        "completed_roasts": 0,
        "total_earned": Decimal("0.00"),
        "rating": 0.0,
        "ratings_count": 0,
        "level": "rookie",
        "completion_rate": 100,
        "current_active": 0,
        "domain": None,
    }


def test_rating_for_one_domain(db, make_roaster, make_request):
    roaster = make_roaster()
    first = _selected_with_feedback(db, make_request(), roaster, FeedbackStatus.completed, rating=4)
    second = _selected_with_feedback(db, make_request(), roaster, FeedbackStatus.completed, rating=3)
    db.add_all([
        FeedbackRating(feedback_id=first.id, domain="UX", overall=5),
        FeedbackRating(feedback_id=first.id, domain="Pricing", overall=3),
        FeedbackRating(feedback_id=second.id, domain="UX", overall=4),
    ])
    db.flush()

    ux = compute_roaster_stats(db, roaster.id, domain="UX")
    assert (ux.rating, ux.ratings_count, ux.domain) == (4.5, 2, "UX")
    assert compute_roaster_stats(db, roaster.id, domain="Pricing").rating == 3.0
    assert compute_roaster_stats(db, roaster.id, domain="Design").ratings_count == 0
    assert compute_roaster_stats(db, roaster.id).rating == 3.5


def test_period_start():
    assert period_start("week", NOW) == NOW - timedelta(days=7)
    # March 31st has no February counterpart
    assert period_start("month", NOW) == datetime(2026, 2, 28, 12, 0, 0)
    assert period_start("month", datetime(2026, 1, 15)) == datetime(2025, 12, 15)
    assert period_start("all", NOW) is None
    with pytest.raises(ValidationError):
        period_start("year", NOW)


def test_period_stats(db, make_roaster, make_request):
    roaster = make_roaster()
    for days_ago, price in ((2, "3.00"), (20, "2.00"), (60, "4.00")):
        _selected_with_feedback(
            db, make_request(), roaster, FeedbackStatus.completed,
            price=price, completed_at=NOW - timedelta(days=days_ago),
        )
    _selected_with_feedback(db, make_request(), roaster, FeedbackStatus.pending, price="9.00")

    week = compute_period_stats(db, roaster.id, "week", now=NOW)
    month = compute_period_stats(db, roaster.id, "month", now=NOW)
    overall = compute_period_stats(db, roaster.id, now=NOW)

    assert (week.count, week.total_earned, week.average_earning) == (1, Decimal("3.00"), Decimal("3.00"))
    assert (month.count, month.total_earned, month.average_earning) == (2, Decimal("5.00"), Decimal("2.50"))
    assert (overall.count, overall.total_earned, overall.average_earning) == (3, Decimal("9.00"), Decimal("3.00"))
    assert overall.since is None


def test_period_stats_without_earnings(db, make_roaster):
    stats = compute_period_stats(db, make_roaster().id, "month", now=NOW)
    assert stats.as_dict()["total_earned"] == Decimal("0.00")
    assert stats.average_earning == Decimal("0.00")
