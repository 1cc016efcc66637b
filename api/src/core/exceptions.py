"""Domain exceptions for token enrolment.

Policy rejections (enrolment too early, capacity reached, invalid token...)
are returned as values, not raised. The exceptions below cover request
validation, missing records, conflicts and access control.
"""

from fastapi import status


class TokenEnrolError(Exception):
    """Base exception for token enrolment errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(TokenEnrolError):
    """Raised when input is rejected before any side effect."""


class NotFoundError(TokenEnrolError):
    """Raised when an instance, course, token or user does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(TokenEnrolError):
    """Raised when an operation conflicts with stored state."""

    status_code = status.HTTP_409_CONFLICT


class AccessDeniedError(TokenEnrolError):
    """Raised when the caller lacks the required capability."""

    status_code = status.HTTP_403_FORBIDDEN


class DatabaseError(TokenEnrolError):
    """Raised when a database operation fails.

    Wraps underlying database exceptions (Cassandra, etc.) with a user-friendly
    message while preserving the original error for logging.
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error
