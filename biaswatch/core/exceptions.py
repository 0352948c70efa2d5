"""Custom exceptions with structured error payloads."""

from __future__ import annotations

from typing import Any


class AppException(Exception):
    """Base application exception with structured error payload."""

    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a problem+json style payload."""
        return {
            "error": self.error_code,
            "message": self.message,
            **({"details": self.details} if self.details else {}),
        }


class NotFoundError(AppException):
    """Resource not found."""

    error_code = "NOT_FOUND"
    message = "Resource not found"


class ValidationError(AppException):
    """Validation failed."""

    error_code = "VALIDATION_ERROR"
    message = "Validation failed"


class RateLimitError(AppException):
    """Rate limit exceeded."""

    error_code = "RATE_LIMIT_EXCEEDED"
    message = "Too many requests. Please try again later."


class ExternalServiceError(AppException):
    """Upstream data source failed."""

    error_code = "EXTERNAL_SERVICE_ERROR"
    message = "External data source temporarily unavailable"


class ExtractionError(AppException):
    """Raw record could not be turned into a numeric value."""

    error_code = "EXTRACTION_ERROR"
    message = "Could not extract a numeric value from record"


class StorageError(AppException):
    """Storage operation failed."""

    error_code = "STORAGE_ERROR"
    message = "Storage operation failed"


class JobError(AppException):
    """Job execution failed."""

    error_code = "JOB_ERROR"
    message = "Job execution failed"
