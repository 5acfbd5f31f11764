from roastmyapp.models.base import Base
from roastmyapp.models.user import User, UserRole, ExperienceLevel, CreatorProfile, RoasterProfile
from roastmyapp.models.roast_request import (
    RoastRequest,
    RoastRequestStatus,
    RoastQuestion,
    FeedbackMode,
    AppCategory,
    OPEN_FOR_APPLICATIONS,
    TERMINAL_REQUEST_STATUSES,
)
from roastmyapp.models.application import RoastApplication, ApplicationStatus, SELECTED_STATUSES
from roastmyapp.models.feedback import Feedback, FeedbackRating, FeedbackStatus
from roastmyapp.models.job import SelectionJob, SelectionJobState

__all__ = [
    "Base",
    "User", "UserRole", "ExperienceLevel", "CreatorProfile", "RoasterProfile",
    "RoastRequest", "RoastRequestStatus", "RoastQuestion", "FeedbackMode", "AppCategory",
    "OPEN_FOR_APPLICATIONS", "TERMINAL_REQUEST_STATUSES",
    "RoastApplication", "ApplicationStatus", "SELECTED_STATUSES",
    "Feedback", "FeedbackRating", "FeedbackStatus",
    "SelectionJob", "SelectionJobState",
]
