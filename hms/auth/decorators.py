"""
Flask route decorators for authentication and authorization.

Provides:
- jwt_required: Require a valid access token and an active user
- optional_jwt: Resolve the principal when possible, never reject
- role_required: Require one of the given role names
- permission_required: Require a (resource, action) grant, wildcards honoured
- any_permission_required: Require any one of several (resource, action) grants

The principal is reloaded from storage on every request; the token only
establishes identity. Sets g.principal (and g.current_user for request logs).
"""
import logging
from functools import wraps
from typing import Optional

from flask import g

from core.errors import AuthenticationError, PermissionDeniedError

from .container import get_container
from .tokens import InvalidTokenError, get_token_from_request
from .types import AuthenticatedPrincipal

logger = logging.getLogger(__name__)

TOKEN_REQUIRED = "Access token required"
TOKEN_INVALID = "Invalid or expired token"


def _resolve_principal() -> AuthenticatedPrincipal:
    """Verify the bearer token and load the current principal, or raise AuthenticationError."""
    token = get_token_from_request()
    if not token:
        raise AuthenticationError(TOKEN_REQUIRED)

    container = get_container()
    try:
        claims = container.tokens.verify_access_token(token)
    except InvalidTokenError as e:
        logger.info(f"Token rejected: {e.message}")
        raise AuthenticationError(TOKEN_INVALID)

    with container.db.connect() as conn:
        principal = container.users.load_principal(conn, claims.sub)
    if principal is None:
        logger.info(f"Token rejected: user {claims.sub} missing or inactive")
        raise AuthenticationError(TOKEN_INVALID)
    return principal


def _attach(principal: Optional[AuthenticatedPrincipal]):
    g.principal = principal
    g.current_user = principal.id if principal else None


def current_principal() -> Optional[AuthenticatedPrincipal]:
    """The principal attached to this request, if any."""
    return getattr(g, "principal", None)


def jwt_required(f):
    """Decorator to require a valid access token for an endpoint.

    Sets g.principal on success; raises AuthenticationError (401) otherwise.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        _attach(_resolve_principal())
        return f(*args, **kwargs)
    return decorated


def optional_jwt(f):
    """Decorator that resolves the principal when it can and leaves it None otherwise."""
    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            principal = _resolve_principal()
        except AuthenticationError as e:
            logger.debug(f"Optional auth: continuing anonymously ({e.message})")
            principal = None
        _attach(principal)
        return f(*args, **kwargs)
    return decorated


def role_required(*allowed_roles):
    """Decorator factory to require at least one of the named roles.

    Usage:
        @role_required("ADMIN", "SUPER_ADMIN")
        def admin_only():
            ...
    """
    def decorator(f):
        @wraps(f)
        @jwt_required
        def decorated(*args, **kwargs):
            if not g.principal.has_role(*allowed_roles):
                raise PermissionDeniedError(f"Required roles: {', '.join(allowed_roles)}")
            return f(*args, **kwargs)
        return decorated
    return decorator


def permission_required(resource: str, action: str):
    """Decorator factory to require a permission on a resource.

    A grant matches when its resource equals `resource` or is "*", and its
    action equals `action` or is "*".

    Usage:
        @permission_required("role", "create")
        def create_role():
            ...
    """
    def decorator(f):
        @wraps(f)
        @jwt_required
        def decorated(*args, **kwargs):
            if not g.principal.has_permission(resource, action):
                raise PermissionDeniedError(f"Required permission: {action} on {resource}")
            return f(*args, **kwargs)
        return decorated
    return decorator


def any_permission_required(*pairs: tuple[str, str]):
    """Decorator factory passing when any one (resource, action) pair is granted.

    Usage:
        @any_permission_required(("user", "view"), ("user", "update"))
        def user_detail():
            ...
    """
    def decorator(f):
        @wraps(f)
        @jwt_required
        def decorated(*args, **kwargs):
            if not g.principal.has_any_permission(pairs):
                raise PermissionDeniedError("Insufficient permissions")
            return f(*args, **kwargs)
        return decorated
    return decorator
