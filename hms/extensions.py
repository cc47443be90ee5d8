"""
Flask extension instances.

Extension objects are created with the app's settings in init_extensions(app)
and kept at module level so the factory can apply per-endpoint limits.
"""

import logging

from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from config.settings import AppSettings

logger = logging.getLogger(__name__)

# Created in init_extensions with full config
limiter = None


def _get_rate_limit_key():
    """
    Custom rate limit key function.
    Uses the authenticated user id if a valid token is present, otherwise the IP address.
    """
    from hms.auth.container import get_container
    from hms.auth.tokens import InvalidTokenError, get_token_from_request

    token = get_token_from_request()
    if token:
        try:
            claims = get_container().tokens.verify_access_token(token)
            return f"user:{claims.sub}"
        except InvalidTokenError:
            pass
    return f"ip:{get_remote_address()}"


def init_extensions(app, settings: AppSettings):
    """Initialize all Flask extensions with the app instance.

    Args:
        app: Flask application instance
        settings: Application settings
    """
    CORS(app, origins=settings.cors_origins, supports_credentials=True)

    global limiter
    rl = settings.rate_limit
    enabled = rl.enabled
    limiter = Limiter(
        key_func=_get_rate_limit_key,
        app=app,
        default_limits=[rl.default],
        storage_uri=rl.storage,
        strategy="moving-window",
        enabled=enabled,
    )
    logger.debug(f"Rate limiting {'enabled' if enabled else 'disabled'} ({rl.storage})")
    return limiter
