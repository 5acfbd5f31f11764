"""Onboarding profiles and the creator/roaster role switch."""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from roastmyapp.models.user import CreatorProfile, ExperienceLevel, RoasterProfile, User, UserRole
from roastmyapp.services.errors import InvalidState, NotFound, ValidationError

logger = logging.getLogger(__name__)


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found", user_id=user_id)
    return user


def create_creator_profile(
    db: Session,
    user_id: int,
    company: Optional[str] = None,
    bio: Optional[str] = None,
) -> CreatorProfile:
    user = get_user(db, user_id)
    if user.creator_profile is not None:
        raise InvalidState("Creator profile already exists")
    profile = CreatorProfile(company=company, bio=bio)
    user.creator_profile = profile
    if user.primary_role is None:
        user.primary_role = UserRole.creator
    db.flush()
    return profile


def create_roaster_profile(
    db: Session,
    user_id: int,
    specialties: Iterable[str],
    experience: ExperienceLevel = ExperienceLevel.beginner,
    languages: Optional[Iterable[str]] = None,
    bio: Optional[str] = None,
    portfolio_url: Optional[str] = None,
) -> RoasterProfile:
    cleaned = sorted({str(spec).strip() for spec in specialties or [] if str(spec).strip()})
    if not cleaned:
        raise ValidationError("Pick at least one specialty")

    user = get_user(db, user_id)
    if user.roaster_profile is not None:
        raise InvalidState("Roaster profile already exists")
    profile = RoasterProfile(
        specialties=cleaned,
        experience=experience,
        languages=sorted({str(lang).strip() for lang in languages or [] if str(lang).strip()}),
        bio=bio,
        portfolio_url=portfolio_url,
    )
    user.roaster_profile = profile
    if user.primary_role is None:
        user.primary_role = UserRole.roaster
    db.flush()
    return profile


def switch_role(db: Session, user_id: int, role: UserRole) -> User:
    user = get_user(db, user_id)
    profile = user.creator_profile if role == UserRole.creator else user.roaster_profile
    if profile is None:
        raise InvalidState(f"Create a {role.value} profile before switching to that role")
    if user.primary_role != role:
        user.primary_role = role
        db.flush()
        logger.info("User %s switched to %s role", user_id, role.value)
    return user
