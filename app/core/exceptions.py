"""
Contest engine error taxonomy.

Services raise these; the handlers registered in app.main turn them into the
standard error envelope. Every error carries a stable code and HTTP status.
"""
from typing import Any, Optional


class ContestEngineError(Exception):
    """Base class for all business errors"""
    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(ContestEngineError):
    """Malformed, missing or contradictory input"""
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Validation error"


class ResourceNotFoundError(ContestEngineError):
    code = "RESOURCE_NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class DuplicateResourceError(ContestEngineError):
    code = "DUPLICATE_RESOURCE"
    status_code = 409
    default_message = "Resource already exists"


class AuthorizationError(ContestEngineError):
    code = "AUTHORIZATION_ERROR"
    status_code = 403
    default_message = "Not allowed to perform this action"


class InvalidStateError(ContestEngineError):
    """Lifecycle-gated operation attempted outside its window"""
    code = "INVALID_STATE"
    status_code = 409
    default_message = "Operation not allowed in the current contest state"


class CapacityExceededError(ContestEngineError):
    code = "CAPACITY_EXCEEDED"
    status_code = 409
    default_message = "Contest is full"


class InternalError(ContestEngineError):
    default_message = "Internal server error"
