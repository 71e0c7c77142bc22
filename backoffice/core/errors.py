"""
Domain error taxonomy.

Services raise these and never translate them into HTTP responses
themselves. The handler registered in backoffice.main maps each class to
its status_code and a uniform JSON envelope.
"""
from typing import Any, Dict, Optional

from fastapi import status


class BackofficeError(Exception):
    """Base class for all errors surfaced to API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Unexpected error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "type": type(self).__name__,
        }
        if self.details:
            body["details"] = self.details
        return body


class NotMember(BackofficeError):
    """Principal has no active membership in the requested company."""
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not a member of this company"


class CompanyNotFound(BackofficeError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Company not found"


class Forbidden(BackofficeError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient permissions"


class NotFound(BackofficeError):
    """Resource does not exist inside the caller's tenant."""
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"

    def __init__(self, resource: str = "Resource", message: Optional[str] = None, **kwargs):
        super().__init__(message or f"{resource} not found", **kwargs)
        self.resource = resource


class Conflict(BackofficeError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflicting resource state"


class InvalidTransition(BackofficeError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Invalid status transition"


class ValidationError(BackofficeError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class Timeout(BackofficeError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_message = "Operation timed out"


class PersistenceError(BackofficeError):
    """Unexpected store failure. Writes raising this are never retried."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Failed to persist changes"
