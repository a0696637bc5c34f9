"""
Shared error handling for the case-management ledger services.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class CdmsException(Exception):
    """Base exception for ledger service errors.

    Every error aborts the current invocation; the ledger transaction
    wrapping it is rolled back so no partial writes survive.
    """

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class NotFoundError(CdmsException):
    """Entity absent from the ledger."""

    status_code = 404

    def __init__(self, message: str = "Entity not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class AlreadyExistsError(CdmsException):
    """Create collided with an existing key."""

    status_code = 409

    def __init__(self, message: str = "Entity already exists", details: Optional[Dict[str, Any]] = None):
        super().__init__("ALREADY_EXISTS", message, details)


class InvalidInputError(CdmsException):
    """Malformed encoded argument or stored value."""

    status_code = 400

    def __init__(self, message: str = "Invalid input", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_INPUT", message, details)


class AccessDeniedError(CdmsException):
    """Policy evaluation refused the caller."""

    status_code = 403

    def __init__(self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None):
        super().__init__("ACCESS_DENIED", message, details)


class IdentityResolutionError(CdmsException):
    """Caller organization could not be determined."""

    status_code = 401

    def __init__(self, message: str = "Failed to resolve caller identity", details: Optional[Dict[str, Any]] = None):
        super().__init__("IDENTITY_RESOLUTION_FAILURE", message, details)


class DependencyFailureError(CdmsException):
    """Underlying ledger store read/write failure."""

    status_code = 503

    def __init__(self, service: str, message: str = "Dependency failure", details: Optional[Dict[str, Any]] = None):
        super().__init__("DEPENDENCY_FAILURE", f"{service}: {message}", details)
