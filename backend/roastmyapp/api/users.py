"""User API routes - profile onboarding, role switch and roaster stats."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from roastmyapp.api.deps import get_current_user, run_command, run_query
from roastmyapp.models.base import get_db
from roastmyapp.models.user import ExperienceLevel, User, UserRole
from roastmyapp.services import users as user_service
from roastmyapp.services.roaster_stats import compute_period_stats, compute_roaster_stats

router = APIRouter()


class CreatorProfileCreate(BaseModel):
    company: Optional[str] = Field(None, max_length=255)
    bio: Optional[str] = None


class RoasterProfileCreate(BaseModel):
    specialties: List[str] = Field(min_length=1)
    experience: ExperienceLevel = ExperienceLevel.beginner
    languages: List[str] = Field(default_factory=list)
    bio: Optional[str] = None
    portfolio_url: Optional[str] = None


class RoleSwitch(BaseModel):
    role: UserRole


class CreatorProfileResponse(BaseModel):
    company: Optional[str]
    bio: Optional[str]

    class Config:
        from_attributes = True


class RoasterProfileResponse(BaseModel):
    specialties: List[str]
    languages: List[str]
    experience: ExperienceLevel
    bio: Optional[str]
    portfolio_url: Optional[str]

    class Config:
        from_attributes = True


class UserResponse(BaseModel):
    id: int
    email: str
    name: Optional[str]
    primary_role: Optional[UserRole]
    creator_profile: Optional[CreatorProfileResponse]
    roaster_profile: Optional[RoasterProfileResponse]

    class Config:
        from_attributes = True


class RoasterStatsResponse(BaseModel):
    roaster_id: int
    completed_roasts: int
    total_earned: Decimal
    rating: float
    ratings_count: int
    level: str
    completion_rate: int
    current_active: int
    domain: Optional[str] = None


class PeriodStatsResponse(BaseModel):
    roaster_id: int
    period: str
    since: Optional[datetime]
    count: int
    total_earned: Decimal
    average_earning: Decimal


def _user_payload(session: Session, user_id: int) -> UserResponse:
    return UserResponse.model_validate(user_service.get_user(session, user_id))


@router.get("/me", response_model=UserResponse)
async def get_me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await run_query(db, lambda session: _user_payload(session, user.id))


@router.post("/me/creator-profile", response_model=UserResponse)
async def create_creator_profile(
    data: CreatorProfileCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    def work(session: Session) -> UserResponse:
        user_service.create_creator_profile(session, user.id, company=data.company, bio=data.bio)
        return _user_payload(session, user.id)

    return await run_command(db, work)


@router.post("/me/roaster-profile", response_model=UserResponse)
async def create_roaster_profile(
    data: RoasterProfileCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    def work(session: Session) -> UserResponse:
        user_service.create_roaster_profile(
            session,
            user.id,
            specialties=data.specialties,
            experience=data.experience,
            languages=data.languages,
            bio=data.bio,
            portfolio_url=data.portfolio_url,
        )
        return _user_payload(session, user.id)

    return await run_command(db, work)


@router.post("/me/role", response_model=UserResponse)
async def switch_role(
    data: RoleSwitch,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Switch the active role; the matching profile must already exist."""
    def work(session: Session) -> UserResponse:
        user_service.switch_role(session, user.id, data.role)
        return _user_payload(session, user.id)

    return await run_command(db, work)


@router.get("/me/roaster-stats", response_model=RoasterStatsResponse)
async def get_my_roaster_stats(
    domain: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Live stats; pass a focus-area ``domain`` to get the rating for that area only."""
    stats = await run_query(db, lambda session: compute_roaster_stats(session, user.id, domain=domain))
    return RoasterStatsResponse(**stats.as_dict())


@router.get("/me/roaster-stats/period", response_model=PeriodStatsResponse)
async def get_my_period_stats(
    period: str = Query("all"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    stats = await run_query(db, lambda session: compute_period_stats(session, user.id, period))
    return PeriodStatsResponse(**stats.as_dict())
