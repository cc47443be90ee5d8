"""
Flask Application Factory.

Creates and configures the Flask app with settings, logging, extensions,
the auth container and all blueprints.
"""

import logging
import time
import uuid
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, g, request

from config.settings import AppSettings, get_settings
from core.db import DatabaseManager

load_dotenv()

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[dict] = None,
    settings: Optional[AppSettings] = None,
    db: Optional[DatabaseManager] = None,
    email_service=None,
) -> Flask:
    """Create and configure the Flask application.

    Args:
        config: Optional dict of Flask config overrides (e.g. {'TESTING': True}).
        settings: Application settings; defaults to get_settings().
        db: Database pool; defaults to one built from settings.database.
        email_service: Substitute email sender (tests).

    Returns:
        Configured Flask app instance.
    """
    settings = settings or get_settings()

    app = Flask(__name__)
    app.json.sort_keys = False
    if config:
        app.config.update(config)

    # Configure logging
    from hms.logging_config import configure_logging
    configure_logging(settings, app)

    # Initialize extensions (CORS, limiter)
    from hms.extensions import init_extensions
    init_extensions(app, settings)

    # Error handlers map every exception onto the response envelope
    from core.errors import register_error_handlers
    register_error_handlers(app, expose_internal=not settings.is_production)

    # Database and auth wiring
    db = db or DatabaseManager(
        db_path=settings.database.resolved_path,
        pool_size=settings.database.database_pool_size,
    )
    from hms.auth import EXTENSION_KEY, build_container, initialize
    initialize(db, settings.auth)
    app.extensions[EXTENSION_KEY] = build_container(settings, db, email_service=email_service)

    # Register blueprints
    _register_blueprints(app, settings)

    # Register middleware
    _register_middleware(app)

    logger.info(f"{settings.app_name} {settings.app_version} ready ({settings.environment})")
    return app


def _register_blueprints(app, settings: AppSettings):
    """Register all route blueprints and their rate limits."""
    from hms import extensions
    from hms.routes import auth_bp, health_bp, permissions_bp, roles_bp, users_bp
    from hms.routes.auth_routes import AUTH_LIMITED_ENDPOINTS, PASSWORD_LIMITED_ENDPOINTS

    prefix = settings.api_prefix.rstrip('/')

    # Health checks (no prefix, no rate limit)
    app.register_blueprint(health_bp)
    extensions.limiter.exempt(health_bp)

    app.register_blueprint(auth_bp, url_prefix=f"{prefix}/auth")
    app.register_blueprint(roles_bp, url_prefix=f"{prefix}/roles")
    app.register_blueprint(permissions_bp, url_prefix=f"{prefix}/permissions")
    app.register_blueprint(users_bp, url_prefix=f"{prefix}/users")

    # Stricter limits on credential endpoints
    for endpoint in AUTH_LIMITED_ENDPOINTS:
        app.view_functions[endpoint] = extensions.limiter.limit(settings.rate_limit.auth)(
            app.view_functions[endpoint]
        )
    for endpoint in PASSWORD_LIMITED_ENDPOINTS:
        app.view_functions[endpoint] = extensions.limiter.limit(settings.rate_limit.password)(
            app.view_functions[endpoint]
        )


SECURITY_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
    'Content-Security-Policy': "default-src 'none'; frame-ancestors 'none'",
    'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
    'Cache-Control': 'no-store',
}

# Paths polled by load balancers; logged at DEBUG only
QUIET_PATHS = frozenset({'/health'})


def _register_middleware(app):
    """Request id, access logging and response hardening."""

    @app.before_request
    def start_request():
        g.request_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex[:8]
        g.started = time.perf_counter()

    @app.after_request
    def finish_request(response):
        elapsed_ms = (time.perf_counter() - g.started) * 1000 if 'started' in g else 0.0
        request_id = g.get('request_id', 'unknown')
        response.headers['X-Request-ID'] = request_id
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)

        if request.path in QUIET_PATHS:
            level = logging.DEBUG
        elif response.status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(
            level,
            f"{request.method} {request.path} -> {response.status_code} ({elapsed_ms:.1f}ms)",
            extra={
                'request_id': request_id,
                'user': g.get('current_user'),
                'method': request.method,
                'endpoint': request.path,
                'status_code': response.status_code,
                'duration_ms': round(elapsed_ms, 2),
                'remote_addr': request.remote_addr,
            },
        )
        return response
