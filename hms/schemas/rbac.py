"""
Role and permission administration schemas.
"""

import re
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .common import ListQuery

_TOKEN_RE = re.compile(r"^(\*|[A-Za-z0-9_\-.]+)$")
_ROLE_NAME_RE = re.compile(r"^[A-Za-z0-9_\- ]+$")


def _check_token(v: str) -> str:
    v = v.strip()
    if not _TOKEN_RE.match(v):
        raise ValueError("Must be '*' or contain only letters, numbers, underscores, hyphens and dots")
    return v


def _check_role_name(v: str) -> str:
    v = v.strip()
    if not _ROLE_NAME_RE.match(v):
        raise ValueError("Role name can only contain letters, numbers, underscores, hyphens, and spaces")
    return v


def _check_ids(v: Optional[List[str]]) -> Optional[List[str]]:
    if v is None:
        return None
    if len(v) > 200:
        raise ValueError("Cannot assign more than 200 items")
    # order-preserving de-duplication
    return list(dict.fromkeys(i.strip() for i in v if i and i.strip()))


# =============================================================================
# Permissions
# =============================================================================

class CreatePermissionRequest(BaseModel):
    """Create a permission (resource x action)."""
    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    description: Optional[str] = Field(None, max_length=500, description="Description")
    resource: str = Field(..., min_length=1, max_length=64, description="Resource, or '*'")
    action: str = Field(..., min_length=1, max_length=64, description="Action, or '*'")

    @field_validator("resource", "action")
    @classmethod
    def validate_token(cls, v: str) -> str:
        return _check_token(v)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


class UpdatePermissionRequest(BaseModel):
    """Partial permission update."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    resource: Optional[str] = Field(None, min_length=1, max_length=64)
    action: Optional[str] = Field(None, min_length=1, max_length=64)
    is_active: Optional[bool] = None

    @field_validator("resource", "action")
    @classmethod
    def validate_token(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _check_token(v)


class BatchCreatePermissionRequest(BaseModel):
    """Create many permissions at once."""
    permissions: List[CreatePermissionRequest] = Field(..., min_length=1, max_length=100)


class PermissionListQuery(ListQuery):
    """Permission listing filters."""
    resource: Optional[str] = Field(None, max_length=64)
    action: Optional[str] = Field(None, max_length=64)


# =============================================================================
# Roles
# =============================================================================

class CreateRoleRequest(BaseModel):
    """Create a role, optionally with its permission set."""
    name: str = Field(..., min_length=1, max_length=64, description="Role name")
    description: Optional[str] = Field(None, max_length=500, description="Role description")
    is_system_role: bool = Field(default=False, description="Protect from deletion")
    permission_ids: List[str] = Field(default_factory=list, description="Permission ids")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _check_role_name(v)

    @field_validator("permission_ids")
    @classmethod
    def validate_ids(cls, v: List[str]) -> List[str]:
        return _check_ids(v)


class UpdateRoleRequest(BaseModel):
    """Partial role update; permission_ids replaces the whole set when given."""
    name: Optional[str] = Field(None, min_length=1, max_length=64)
    description: Optional[str] = Field(None, max_length=500)
    is_system_role: Optional[bool] = None
    is_active: Optional[bool] = None
    permission_ids: Optional[List[str]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return _check_role_name(v)

    @field_validator("permission_ids")
    @classmethod
    def validate_ids(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _check_ids(v)


class RoleListQuery(ListQuery):
    """Role listing filters."""
