"""
Core shared utilities for the HMS backend.

This package holds the pieces that do not depend on Flask routing or the
auth domain: the SQLite connection pool, the error taxonomy, the response
envelope and UTC timestamp helpers.
"""

from .db import DatabaseManager, is_unique_violation, row_to_dict, rows_to_dicts
from .errors import (
    APIError,
    AuthenticationError,
    ConflictError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ValidationError,
    register_error_handlers,
)
from .responses import envelope, error_response, paginate, success_response

__all__ = [
    "DatabaseManager",
    "is_unique_violation",
    "row_to_dict",
    "rows_to_dicts",
    "APIError",
    "AuthenticationError",
    "ConflictError",
    "InternalError",
    "NotFoundError",
    "PermissionDeniedError",
    "RateLimitError",
    "ValidationError",
    "register_error_handlers",
    "envelope",
    "error_response",
    "paginate",
    "success_response",
]
