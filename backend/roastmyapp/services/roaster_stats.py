"""Roaster statistics computed in real time from feedback and application rows.

Nothing here is stored: each call re-aggregates the source rows so the numbers
cannot drift from the records they describe.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from roastmyapp.config import get_settings
from roastmyapp.models.application import RoastApplication, SELECTED_STATUSES
from roastmyapp.models.feedback import Feedback, FeedbackRating, FeedbackStatus
from roastmyapp.services.errors import ValidationError

PERIODS = ("week", "month", "all")


@dataclass
class RoasterStats:
    roaster_id: int
    completed_roasts: int
    total_earned: Decimal
    rating: float
    ratings_count: int
    level: str
    completion_rate: int
    current_active: int
    domain: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "roaster_id": self.roaster_id,
            "completed_roasts": self.completed_roasts,
            "total_earned": self.total_earned,
            "rating": self.rating,
            "ratings_count": self.ratings_count,
            "level": self.level,
            "completion_rate": self.completion_rate,
            "current_active": self.current_active,
            "domain": self.domain,
        }


def level_for_completed(completed_roasts: int, steps: Optional[List[Tuple[str, int]]] = None) -> str:
    """Map a completed-roast count to a level; monotonic in the count."""
    for level, minimum in steps if steps is not None else get_settings().level_steps():
        if completed_roasts >= minimum:
            return level
    return "rookie"


def completion_rate(completed_roasts: int, selected_applications: int) -> int:
    if selected_applications <= 0:
        return 100
    return min(100, round(completed_roasts / selected_applications * 100))


def compute_roaster_stats(db: Session, roaster_id: int, domain: Optional[str] = None) -> RoasterStats:
    """Aggregate a roaster's numbers. With ``domain``, the rating covers that focus area only."""
    completed_filter = and_(
        Feedback.roaster_id == roaster_id,
        Feedback.status == FeedbackStatus.completed,
    )

    completed_roasts = db.execute(
        select(func.count(Feedback.id)).where(completed_filter)
    ).scalar() or 0

    total_earned = db.execute(
        select(func.coalesce(func.sum(Feedback.final_price), 0)).where(completed_filter)
    ).scalar()

    if domain is None:
        rating_query = select(func.avg(Feedback.creator_rating), func.count(Feedback.creator_rating)).where(
            completed_filter, Feedback.creator_rating.is_not(None)
        )
    else:
        rating_query = (
            select(func.avg(FeedbackRating.overall), func.count(FeedbackRating.id))
            .join(Feedback, FeedbackRating.feedback_id == Feedback.id)
            .where(completed_filter, FeedbackRating.domain == domain)
        )
    avg_rating, ratings_count = db.execute(rating_query).one()

    selected_applications = db.execute(
        select(func.count(RoastApplication.id)).where(
            RoastApplication.roaster_id == roaster_id,
            RoastApplication.status.in_(SELECTED_STATUSES),
        )
    ).scalar() or 0

    # Selected applications whose feedback is not completed yet
    current_active = db.execute(
        select(func.count(RoastApplication.id))
        .outerjoin(Feedback, Feedback.application_id == RoastApplication.id)
        .where(
            RoastApplication.roaster_id == roaster_id,
            RoastApplication.status.in_(SELECTED_STATUSES),
            (Feedback.id.is_(None)) | (Feedback.status != FeedbackStatus.completed),
        )
    ).scalar() or 0

    return RoasterStats(
        roaster_id=roaster_id,
        completed_roasts=int(completed_roasts),
        total_earned=Decimal(str(total_earned or 0)).quantize(Decimal("0.01")),
        rating=round(float(avg_rating), 1) if avg_rating is not None else 0.0,
        ratings_count=int(ratings_count or 0),
        level=level_for_completed(int(completed_roasts)),
        completion_rate=completion_rate(int(completed_roasts), int(selected_applications)),
        current_active=int(current_active),
        domain=domain,
    )


@dataclass
class PeriodStats:
    roaster_id: int
    period: str
    since: Optional[datetime]
    count: int
    total_earned: Decimal
    average_earning: Decimal

    def as_dict(self) -> Dict[str, Any]:
        return {
            "roaster_id": self.roaster_id,
            "period": self.period,
            "since": self.since,
            "count": self.count,
            "total_earned": self.total_earned,
            "average_earning": self.average_earning,
        }


def period_start(period: str, now: datetime) -> Optional[datetime]:
    """Start of a reporting period ending at ``now``; ``None`` for all time."""
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        year, month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
        return now.replace(year=year, month=month, day=min(now.day, calendar.monthrange(year, month)[1]))
    if period == "all":
        return None
    raise ValidationError(f"Unknown period {period!r}", periods=list(PERIODS))


def compute_period_stats(
    db: Session,
    roaster_id: int,
    period: str = "all",
    now: Optional[datetime] = None,
) -> PeriodStats:
    """Completed feedbacks and earnings over the last week, month or all time."""
    since = period_start(period, now or datetime.utcnow())
    query = select(
        func.count(Feedback.id),
        func.coalesce(func.sum(Feedback.final_price), 0),
        func.avg(Feedback.final_price),
    ).where(
        Feedback.roaster_id == roaster_id,
        Feedback.status == FeedbackStatus.completed,
    )
    if since is not None:
        query = query.where(Feedback.completed_at >= since)
    count, total, average = db.execute(query).one()

    cents = Decimal("0.01")
    return PeriodStats(
        roaster_id=roaster_id,
        period=period,
        since=since,
        count=int(count or 0),
        total_earned=Decimal(str(total or 0)).quantize(cents),
        average_earning=Decimal(str(average or 0)).quantize(cents),
    )
