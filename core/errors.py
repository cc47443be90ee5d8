"""
Centralized error handling for the HMS API.

Two families:
- APIError and subclasses: client errors (4xx), message returned as-is
- InternalError and anything unexpected: 500, message hidden in production

Usage:
    from core.errors import NotFoundError, ValidationError

    raise NotFoundError("Role not found")
    raise ValidationError("Validation failed", errors=[{"field": "email", "message": "..."}])

Domain code only raises. register_error_handlers() is the single place
that logs an error and turns it into the response envelope.
"""

import logging
from typing import Dict, List, Optional

from flask import g, request
from werkzeug.exceptions import HTTPException

from core.responses import error_response

logger = logging.getLogger(__name__)

GENERIC_INTERNAL_MESSAGE = "Internal Server Error"


# =============================================================================
# Client Errors (4xx)
# =============================================================================

class APIError(Exception):
    """Expected failure with a client-safe message and a class-level status."""
    status_code = 400

    def __init__(
        self,
        message: str,
        status_code: int = None,
        errors: Optional[List[Dict[str, str]]] = None,
        data=None,
    ):
        super().__init__(message)
        self.message = message
        self.errors = errors
        self.data = data
        if status_code is not None:
            self.status_code = status_code


class ValidationError(APIError):
    """Request validation failed (400)."""
    status_code = 400


class AuthenticationError(APIError):
    """Missing, invalid or expired credentials (401)."""
    status_code = 401


class PermissionDeniedError(APIError):
    """Authenticated but not allowed (403)."""
    status_code = 403


class NotFoundError(APIError):
    """Resource not found (404)."""
    status_code = 404


class ConflictError(APIError):
    """Uniqueness conflict (409)."""
    status_code = 409


class RateLimitError(APIError):
    """Rate limit exceeded (429)."""
    status_code = 429


# =============================================================================
# Internal Error (5xx)
# =============================================================================

class InternalError(Exception):
    """Unexpected failure; the message is hidden in production."""


def _request_extra() -> dict:
    return {
        'request_id': getattr(g, 'request_id', 'unknown'),
        'method': request.method,
        'endpoint': request.path,
        'remote_addr': request.remote_addr,
    }


def register_error_handlers(app, expose_internal: bool = True):
    """
    Register Flask error handlers mapping exceptions to the response envelope.

    Args:
        app: Flask application
        expose_internal: When False (production), messages of unexpected
            errors are replaced with a generic string.
    """

    @app.errorhandler(APIError)
    def handle_api_error(e: APIError):
        """Handle all APIError subclasses."""
        logger.warning(f"API error ({e.status_code}): {e.message}", extra=_request_extra())
        return error_response(e.message, e.status_code, errors=e.errors, data=e.data)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        """Routing errors, 405s and limiter 429s use the same envelope."""
        status = e.code or 500
        if status == RateLimitError.status_code:
            return handle_api_error(
                RateLimitError(f"Too many requests, please try again later ({e.description})")
            )
        message = e.description if status < 500 else GENERIC_INTERNAL_MESSAGE
        logger.warning(f"HTTP {status}: {e.name}", extra=_request_extra())
        return error_response(message, status)

    @app.errorhandler(Exception)
    def handle_exception(e: Exception):
        """Handle anything unclassified as a 500."""
        logger.exception(f"Unhandled exception: {e}", extra=_request_extra())
        message = str(e) if expose_internal and str(e) else GENERIC_INTERNAL_MESSAGE
        return error_response(message, 500)
