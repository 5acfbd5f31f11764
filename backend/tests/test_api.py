from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from roastmyapp.api import roast_requests as roast_requests_api
from roastmyapp.api.deps import http_error, page_limit
from roastmyapp.main import app
from roastmyapp.models import (
    Base,
    CreatorProfile,
    ExperienceLevel,
    Feedback,
    FeedbackMode,
    FeedbackStatus,
    RoasterProfile,
    RoastRequest,
    User,
    UserRole,
)
from roastmyapp.models.base import engine_options, get_db
from roastmyapp.services.errors import AlreadyApplied, NotAuthenticated, NotOwner, TooManyQuestions

client = TestClient(app)


def test_http_error_maps_domain_errors_to_status_codes():
    conflict = http_error(AlreadyApplied(roast_request_id=3))
    assert conflict.status_code == 409
    assert conflict.detail == {
        "code": "already_applied",
        "message": "You already applied to this roast request",
        "context": {"roast_request_id": 3},
    }
    assert http_error(NotOwner()).status_code == 403
    assert http_error(NotAuthenticated()).status_code == 401
    assert http_error(TooManyQuestions()).status_code == 422


def test_page_limit_is_clamped():
    assert page_limit(0) == 1
    assert page_limit(50) == 50
    assert page_limit(5000) == 100


def test_engine_options_size_the_pool_for_server_databases():
    sqlite = engine_options("sqlite://")
    assert sqlite["pool_pre_ping"] is True
    assert "pool_size" not in sqlite

    postgres = engine_options("postgresql+asyncpg://db/roastmyapp")
    assert postgres["pool_size"] == 5
    assert postgres["max_overflow"] == 10


def test_health():
    assert client.get("/health").json() == {"status": "healthy"}


def test_pricing_quote():
    response = client.post(
        "/roast-requests/pricing:quote",
        json={"feedback_mode": "TARGETED", "question_count": 4, "roaster_count": 3, "is_urgent": True},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["per_roaster_total"] == "3.00"
    assert body["grand_total"] == "9.00"
    assert body["labels"]["total_label"] == "Total: 9.00€"


def test_pricing_quote_rejects_too_many_questions():
    response = client.post(
        "/roast-requests/pricing:quote",
        json={"feedback_mode": "STRUCTURED", "question_count": 25, "roaster_count": 1},
    )
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "too_many_questions"


def test_routes_need_a_user():
    response = client.get("/users/me")
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "not_authenticated"


@pytest.fixture
def api_session_factory(tmp_path):
    """File-backed SQLite shared by a sync seeding session and the app's async sessions."""
    path = tmp_path / "api.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    # One aiosqlite connection per request; TestClient runs each request on its own loop
    async_engine = create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)
    async_sessions = async_sessionmaker(async_engine, expire_on_commit=False)

    async def override_get_db():
        async with async_sessions() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield sessionmaker(bind=sync_engine, expire_on_commit=False)
    finally:
        app.dependency_overrides.pop(get_db, None)
        sync_engine.dispose()


@pytest.fixture
def marketplace(api_session_factory):
    with api_session_factory() as session:
        creator = User(email="creator@example.test", name="Camille", primary_role=UserRole.creator)
        creator.creator_profile = CreatorProfile(company="Acme")
        roasters = []
        for index in range(2):
            roaster = User(email=f"roaster{index}@example.test", name=f"roaster-{index}", primary_role=UserRole.roaster)
            roaster.roaster_profile = RoasterProfile(
                specialties=["UX"], experience=ExperienceLevel.intermediate, languages=["fr"]
            )
            roasters.append(roaster)
        session.add_all([creator, *roasters])
        session.flush()
        roast_request = RoastRequest(
            creator_id=creator.id,
            title="Roast my habit tracker",
            description="A habit tracker for remote teams that nudges people at the right moment of the day.",
            app_url="https://habits.example.test",
            focus_areas=["UX"],
            feedback_mode=FeedbackMode.FREE,
            price_per_roaster=Decimal("2.00"),
            feedbacks_requested=2,
        )
        session.add(roast_request)
        session.commit()
        return {
            "creator": creator.id,
            "roasters": [roaster.id for roaster in roasters],
            "request": roast_request.id,
        }


def _as(user_id):
    return {"X-User-Id": str(user_id)}


def _apply(roast_request_id, roaster_id):
    return client.post(
        f"/roast-requests/{roast_request_id}/applications",
        json={"motivation": "I review habit apps every week"},
        headers=_as(roaster_id),
    )


def test_first_application_queues_the_selection_sweep(monkeypatch, marketplace):
    queued = []
    monkeypatch.setattr(
        roast_requests_api, "schedule_selection_sweep", lambda request_id, run_at: queued.append((request_id, run_at))
    )
    request_id = marketplace["request"]
    first_roaster, second_roaster = marketplace["roasters"]

    first = _apply(request_id, first_roaster)
    assert first.status_code == 200
    assert first.json()["status"] == "pending"
    assert len(queued) == 1

    detail = client.get(f"/roast-requests/{request_id}").json()
    assert detail["status"] == "collecting_applications"
    assert queued[0][0] == request_id
    assert queued[0][1].isoformat() == detail["selection_deadline"]

    assert _apply(request_id, second_roaster).status_code == 200
    duplicate = _apply(request_id, first_roaster)
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["code"] == "already_applied"
    assert len(queued) == 1


def test_service_errors_reach_the_caller(monkeypatch, marketplace):
    monkeypatch.setattr(roast_requests_api, "schedule_selection_sweep", lambda request_id, run_at: True)
    request_id, creator = marketplace["request"], marketplace["creator"]
    first_roaster, second_roaster = marketplace["roasters"]
    first_app = _apply(request_id, first_roaster).json()["id"]
    _apply(request_id, second_roaster)

    stranger = client.post(f"/applications/{first_app}:select", headers=_as(second_roaster))
    assert stranger.status_code == 403
    assert stranger.json()["detail"]["code"] == "not_owner"

    assert client.post(f"/applications/{first_app}:select", headers=_as(creator)).json()["status"] == "accepted"
    again = client.post(f"/applications/{first_app}:reject", headers=_as(creator))
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "invalid_state"

    assert client.post(f"/roast-requests/{request_id}:cancel", headers=_as(first_roaster)).status_code == 403
    cancelled = client.post(f"/roast-requests/{request_id}:cancel", headers=_as(creator))
    assert cancelled.status_code == 200
    assert cancelled.json()["rejected_applications"] == 1
    assert cancelled.json()["roast_request"]["status"] == "cancelled"
    assert client.post(f"/roast-requests/{request_id}:cancel", headers=_as(creator)).status_code == 409


def test_failed_command_is_rolled_back(monkeypatch, api_session_factory, marketplace):
    monkeypatch.setattr(roast_requests_api, "schedule_selection_sweep", lambda request_id, run_at: True)
    roaster = marketplace["roasters"][0]
    application_id = _apply(marketplace["request"], roaster).json()["id"]
    client.post(f"/applications/{application_id}:select", headers=_as(marketplace["creator"]))
    feedback_id = client.get("/feedbacks/mine", headers=_as(roaster)).json()[0]["id"]

    # Content is applied before validation fails on the missing sections
    response = client.post(
        f"/feedbacks/{feedback_id}:submit",
        json={"first_impression": "Clear pitch, confusing signup flow."},
        headers=_as(roaster),
    )

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "validation_error"
    with api_session_factory() as session:
        feedback = session.get(Feedback, feedback_id)
        assert feedback.first_impression is None
        assert feedback.status == FeedbackStatus.draft
