"""
Health check endpoint.

Unauthenticated and exempt from rate limits.
"""

import logging
import time

from flask import Blueprint

from core.responses import error_response, success_response
from core.timestamps import isonow
from hms.auth import get_container

logger = logging.getLogger(__name__)

health_bp = Blueprint('health', __name__)

_STARTED_AT = time.monotonic()


@health_bp.route('/health', methods=['GET'])
def health():
    """Liveness plus database reachability."""
    container = get_container()
    db_ok = container.db.ping()
    data = {
        "status": "OK" if db_ok else "DEGRADED",
        "timestamp": isonow(),
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
        "version": container.settings.app_version,
        "database": "connected" if db_ok else "unavailable",
    }
    if not db_ok:
        return error_response("Service degraded", 503, data=data)
    return success_response(data, "Service is healthy")
