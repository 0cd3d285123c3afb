"""
Domain errors raised by the feature access engine.

Each error carries the HTTP status it maps to; app.main renders them into
the standard response envelope.
"""
from typing import Any, Optional

from fastapi import status


class FeatureAccessError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None, error: Any = None):
        self.message = message or self.message
        self.error = error
        super().__init__(self.message)


class ValidationError(FeatureAccessError):
    """Unknown capability key or malformed flag value."""
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid feature access payload"


class NotFoundError(FeatureAccessError):
    """Partner or employee does not resolve."""
    status_code = status.HTTP_404_NOT_FOUND
    message = "Not found"


class ForbiddenError(FeatureAccessError):
    """Caller is outside the scope of the requested record."""
    status_code = status.HTTP_403_FORBIDDEN
    message = "Not authorized to access this resource"


class StorageError(FeatureAccessError):
    """Database failure; details are logged, never returned."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Something went wrong"
