"""Domain error taxonomy shared by services, API routes and workers."""
from __future__ import annotations

from typing import Any, Dict, Optional


class RoastError(Exception):
    http_status = 400
    code = "roast_error"
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, **context: Any) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.context = context

    def as_detail(self) -> Dict[str, Any]:
        detail: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.context:
            detail["context"] = self.context
        return detail


# Validation: malformed input, rejected before touching storage

class ValidationError(RoastError):
    http_status = 422
    code = "validation_error"
    default_message = "Invalid input"


class TooManyQuestions(ValidationError):
    code = "too_many_questions"
    default_message = "Too many questions for this feedback mode"


class NegativeQuantity(ValidationError):
    code = "negative_quantity"
    default_message = "Quantities cannot be negative"


# Authorization

class AuthorizationError(RoastError):
    http_status = 403
    code = "forbidden"
    default_message = "Not allowed"


class NotAuthenticated(AuthorizationError):
    http_status = 401
    code = "not_authenticated"
    default_message = "Authentication required"


class NotOwner(AuthorizationError):
    code = "not_owner"
    default_message = "Only the creator of this roast request can do that"


# State conflicts: detected inside the transaction, which is rolled back

class StateConflict(RoastError):
    http_status = 409
    code = "state_conflict"
    default_message = "Conflicting state"


class AlreadyApplied(StateConflict):
    code = "already_applied"
    default_message = "You already applied to this roast request"


class InvalidState(StateConflict):
    code = "invalid_state"
    default_message = "This action is not allowed in the current state"


class NoSlotsAvailable(StateConflict):
    code = "no_slots_available"
    default_message = "No slots remaining on this roast request"


class RequestClosed(StateConflict):
    code = "request_closed"
    default_message = "This roast request no longer accepts applications"


class NotFound(RoastError):
    http_status = 404
    code = "not_found"
    default_message = "Not found"
