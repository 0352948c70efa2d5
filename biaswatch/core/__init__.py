"""Core infrastructure: settings, logging, exceptions, rate limiting."""

from .config import DATA_TYPES, Settings, get_settings, settings
from .exceptions import (
    AppException,
    ExternalServiceError,
    ExtractionError,
    JobError,
    NotFoundError,
    RateLimitError,
    StorageError,
    ValidationError,
)
from .rate_limiter import AssetRateLimiter, RateLimitConfig, RateLimitResult


__all__ = [
    "AppException",
    "AssetRateLimiter",
    "DATA_TYPES",
    "ExternalServiceError",
    "ExtractionError",
    "JobError",
    "NotFoundError",
    "RateLimitConfig",
    "RateLimitError",
    "RateLimitResult",
    "Settings",
    "StorageError",
    "ValidationError",
    "get_settings",
    "settings",
]
