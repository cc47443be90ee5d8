"""
HMS authentication and authorization module.

Public API:
- Decorators: jwt_required, optional_jwt, role_required, permission_required, any_permission_required
- Tokens: TokenService, InvalidTokenError, get_token_from_request
- Services: AuthService, UserService, RoleService, PermissionService
- Wiring: build_container, get_container, initialize

Internal modules should import from submodules directly.
External callers should use this facade.

Import Rules:
- External callers: Use `from hms.auth import X` (this facade)
- Internal auth modules: Use `from .submodule import X` (direct imports)
- Ban: `from hms.auth import X` inside auth submodules (causes facade import)
"""

# =============================================================================
# Decorators (most commonly used)
# =============================================================================
from .decorators import (
    jwt_required,
    optional_jwt,
    role_required,
    permission_required,
    any_permission_required,
    current_principal,
)

# =============================================================================
# Types
# =============================================================================
from .types import (
    AuthenticatedPrincipal,
    RoleGrant,
    PermissionGrant,
    TokenPayload,
    RefreshPayload,
    BatchResult,
    permission_matches,
    WILDCARD,
)

# =============================================================================
# Tokens / Passwords
# =============================================================================
from .tokens import (
    TokenService,
    InvalidTokenError,
    get_token_from_request,
)

from .passwords import (
    hash_password,
    verify_password,
    validate_password_strength,
    generate_secure_token,
)

# =============================================================================
# Stores and Services
# =============================================================================
from .identity import UserStore, UserService
from .permissions import PermissionStore, PermissionService, find_batch_duplicates
from .roles import RoleStore, RoleService
from .flows import AuthService
from .email import EmailService, EmailDeliveryError

# =============================================================================
# Wiring and Schema
# =============================================================================
from .container import AuthContainer, build_container, get_container, EXTENSION_KEY
from .schema import initialize
from .config import (
    DEFAULT_PERMISSIONS,
    DEFAULT_ROLES,
    SUPER_ADMIN_ROLE,
    ADMIN_ROLE,
    PATIENT_ROLE,
)

__all__ = [
    # Decorators
    "jwt_required",
    "optional_jwt",
    "role_required",
    "permission_required",
    "any_permission_required",
    "current_principal",
    # Types
    "AuthenticatedPrincipal",
    "RoleGrant",
    "PermissionGrant",
    "TokenPayload",
    "RefreshPayload",
    "BatchResult",
    "permission_matches",
    "WILDCARD",
    # Tokens / passwords
    "TokenService",
    "InvalidTokenError",
    "get_token_from_request",
    "hash_password",
    "verify_password",
    "validate_password_strength",
    "generate_secure_token",
    # Stores and services
    "UserStore",
    "UserService",
    "PermissionStore",
    "PermissionService",
    "find_batch_duplicates",
    "RoleStore",
    "RoleService",
    "AuthService",
    "EmailService",
    "EmailDeliveryError",
    # Wiring
    "AuthContainer",
    "build_container",
    "get_container",
    "EXTENSION_KEY",
    "initialize",
    # Seed data
    "DEFAULT_PERMISSIONS",
    "DEFAULT_ROLES",
    "SUPER_ADMIN_ROLE",
    "ADMIN_ROLE",
    "PATIENT_ROLE",
]
