"""
Utilities module: Exceptions, money helpers, schemas.
"""

from shared.utils.exceptions import (
    AppException,
    NotFoundError,
    ValidationError,
    InvalidTransitionError,
    ConflictError,
    InternalError,
    ExternalServiceError,
)

__all__ = [
    "AppException",
    "NotFoundError",
    "ValidationError",
    "InvalidTransitionError",
    "ConflictError",
    "InternalError",
    "ExternalServiceError",
]
