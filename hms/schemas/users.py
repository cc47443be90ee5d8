"""
User administration schemas.
"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .common import ListQuery, normalize_email


def _dedupe(v: Optional[List[str]]) -> Optional[List[str]]:
    if v is None:
        return None
    if len(v) > 50:
        raise ValueError("Cannot assign more than 50 roles")
    return list(dict.fromkeys(i.strip() for i in v if i and i.strip()))


class CreateUserRequest(BaseModel):
    """Administrator-created account (created already verified)."""
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1, max_length=200)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    phone: Optional[str] = Field(None, max_length=32)
    date_of_birth: Optional[date] = None
    role_ids: List[str] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("role_ids")
    @classmethod
    def validate_role_ids(cls, v: List[str]) -> List[str]:
        return _dedupe(v)


class UpdateUserRequest(BaseModel):
    """Partial user update; role_ids replaces all assignments when given."""
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    phone: Optional[str] = Field(None, max_length=32)
    date_of_birth: Optional[date] = None
    is_active: Optional[bool] = None
    role_ids: Optional[List[str]] = None

    @field_validator("role_ids")
    @classmethod
    def validate_role_ids(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _dedupe(v)


class AssignRolesRequest(BaseModel):
    """Replace a user's role assignments."""
    role_ids: List[str] = Field(..., description="Role ids to assign")

    @field_validator("role_ids")
    @classmethod
    def validate_role_ids(cls, v: List[str]) -> List[str]:
        return _dedupe(v)


class UserListQuery(ListQuery):
    """User listing filters."""
