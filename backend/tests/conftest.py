import os
from datetime import datetime, timedelta
from decimal import Decimal
from itertools import count

# Workers build their engine at import time; keep it off Postgres under test
os.environ.setdefault("DATABASE_URL_SYNC", "sqlite://")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from roastmyapp.models import (
    Base,
    ApplicationStatus,
    CreatorProfile,
    ExperienceLevel,
    FeedbackMode,
    RoastApplication,
    RoasterProfile,
    RoastRequest,
    RoastRequestStatus,
    SelectionJob,
    SelectionJobState,
    User,
    UserRole,
)

NOW = datetime(2026, 3, 2, 9, 0, 0)
DESCRIPTION = "A habit tracker for remote teams that nudges people at the right moment of the day."

_emails = count(1)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def make_creator(db):
    def _make(name="Camille"):
        user = User(email=f"creator{next(_emails)}@example.test", name=name, primary_role=UserRole.creator)
        user.creator_profile = CreatorProfile(company="Acme")
        db.add(user)
        db.flush()
        return user

    return _make


@pytest.fixture
def make_roaster(db):
    def _make(specialties=("UX",), experience=ExperienceLevel.intermediate, name="Sam"):
        user = User(email=f"roaster{next(_emails)}@example.test", name=name, primary_role=UserRole.roaster)
        user.roaster_profile = RoasterProfile(specialties=list(specialties), experience=experience, languages=["fr"])
        db.add(user)
        db.flush()
        return user

    return _make


@pytest.fixture
def make_request(db, make_creator):
    def _make(creator=None, feedbacks_requested=2, focus_areas=("UX",), status=RoastRequestStatus.open):
        creator = creator or make_creator()
        roast_request = RoastRequest(
            creator_id=creator.id,
            title="Roast my habit tracker",
            description=DESCRIPTION,
            app_url="https://habits.example.test",
            focus_areas=list(focus_areas),
            feedback_mode=FeedbackMode.FREE,
            price_per_roaster=Decimal("2.00"),
            feedbacks_requested=feedbacks_requested,
            status=status,
        )
        db.add(roast_request)
        db.flush()
        return roast_request

    return _make


@pytest.fixture
def collecting_request(db, make_request, make_roaster):
    """Request in its selection window with one pending application per score."""
    def _make(scores, feedbacks_requested=2, deadline=NOW, created_at=None):
        roast_request = make_request(feedbacks_requested=feedbacks_requested)
        roast_request.status = RoastRequestStatus.collecting_applications
        roast_request.selection_deadline = deadline
        roast_request.selection_job = SelectionJob(run_at=deadline, state=SelectionJobState.scheduled)
        applications = []
        for index, score in enumerate(scores):
            roaster = make_roaster(name=f"roaster-{index}")
            application = RoastApplication(
                roast_request_id=roast_request.id,
                roaster_id=roaster.id,
                status=ApplicationStatus.pending,
                score=score,
                created_at=created_at or (deadline - timedelta(hours=23) + timedelta(minutes=index)),
            )
            db.add(application)
            applications.append(application)
        db.flush()
        return roast_request, applications

    return _make
