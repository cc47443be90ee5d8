"""
Pydantic schemas for request validation.

Each route validates its body or query string through parse_body() /
parse_query(), which turn Pydantic failures into a list of
{field, message} entries on a ValidationError.
"""

from hms.schemas.common import (
    ListQuery,
    format_validation_errors,
    normalize_email,
    parse_body,
    parse_query,
)
from hms.schemas.auth import (
    RegisterRequest,
    LoginRequest,
    RefreshTokenRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    VerifyEmailRequest,
    ResendVerificationRequest,
    ChangePasswordRequest,
)
from hms.schemas.rbac import (
    CreatePermissionRequest,
    UpdatePermissionRequest,
    BatchCreatePermissionRequest,
    PermissionListQuery,
    CreateRoleRequest,
    UpdateRoleRequest,
    RoleListQuery,
)
from hms.schemas.users import (
    CreateUserRequest,
    UpdateUserRequest,
    AssignRolesRequest,
    UserListQuery,
)

__all__ = [
    # Common
    "ListQuery",
    "format_validation_errors",
    "normalize_email",
    "parse_body",
    "parse_query",
    # Auth
    "RegisterRequest",
    "LoginRequest",
    "RefreshTokenRequest",
    "ForgotPasswordRequest",
    "ResetPasswordRequest",
    "VerifyEmailRequest",
    "ResendVerificationRequest",
    "ChangePasswordRequest",
    # Roles / permissions
    "CreatePermissionRequest",
    "UpdatePermissionRequest",
    "BatchCreatePermissionRequest",
    "PermissionListQuery",
    "CreateRoleRequest",
    "UpdateRoleRequest",
    "RoleListQuery",
    # Users
    "CreateUserRequest",
    "UpdateUserRequest",
    "AssignRolesRequest",
    "UserListQuery",
]
