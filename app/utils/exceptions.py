"""
Domain exceptions for the booking core.

Services raise these; the exception handler in main.py turns them into
JSON responses using status_code and to_dict().
Scheduled jobs catch them per booking and keep going.
"""

from typing import Any, Dict, Optional

from fastapi import status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(DomainException):
    """Malformed or missing request fields. Raised before any state change."""

    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(DomainException):
    """Dates unavailable, or an illegal state transition."""

    status_code = status.HTTP_409_CONFLICT


class NotFoundError(DomainException):
    """Referenced booking or room type does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class IntegrationError(DomainException):
    """Persistence or notification transport failure, never a business rule."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class SecurityError(DomainException):
    """Payment callback failed signature verification."""

    status_code = status.HTTP_400_BAD_REQUEST
