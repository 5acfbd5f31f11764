"""Users and their role profiles."""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, ForeignKey, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from roastmyapp.models.base import Base


class UserRole(enum.Enum):
    creator = "creator"
    roaster = "roaster"


class ExperienceLevel(enum.Enum):
    beginner = "Beginner"
    intermediate = "Intermediate"
    expert = "Expert"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    primary_role = Column(Enum(UserRole), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    creator_profile = relationship(
        "CreatorProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    roaster_profile = relationship(
        "RoasterProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )


class CreatorProfile(Base):
    __tablename__ = "creator_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    company = Column(String(255), nullable=True)
    bio = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="creator_profile")


class RoasterProfile(Base):
    """Static roaster attributes.

    Completed roasts, earnings, rating and level are never stored here; they are
    recomputed from feedback and application rows (see services.roaster_stats).
    """
    __tablename__ = "roaster_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    specialties = Column(JSON, default=list)  # e.g. ["UX", "Business"]
    languages = Column(JSON, default=list)
    experience = Column(Enum(ExperienceLevel), default=ExperienceLevel.beginner)
    bio = Column(Text, nullable=True)
    portfolio_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="roaster_profile")
