"""
Uniform response envelope.

Every endpoint answers with:
    {"success": bool, "message": str, "data"?: ..., "errors"?: [{field, message}], "timestamp": ISO8601}
"""

import math
from typing import Any, Dict, List, Optional

from flask import jsonify

from core.timestamps import isonow


def envelope(
    success: bool,
    message: str,
    data: Any = None,
    errors: Optional[List[Dict[str, str]]] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": success, "message": message}
    if data is not None:
        body["data"] = data
    if errors:
        body["errors"] = errors
    body["timestamp"] = isonow()
    return body


def success_response(data: Any = None, message: str = "Success", status: int = 200):
    """Return a (response, status) tuple for a successful request."""
    return jsonify(envelope(True, message, data=data)), status


def error_response(
    message: str,
    status: int = 400,
    errors: Optional[List[Dict[str, str]]] = None,
    data: Any = None,
):
    """Return a (response, status) tuple for a failed request."""
    return jsonify(envelope(False, message, data=data, errors=errors)), status


def paginate(items: List[Any], total: int, page: int, limit: int) -> Dict[str, Any]:
    """Build the standard paginated payload."""
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
