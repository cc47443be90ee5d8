"""
Authentication request schemas.

Password strength is checked against the configured policy by the auth
services; these models only bound the length.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .common import normalize_email


class _EmailField(BaseModel):
    email: str = Field(..., min_length=3, max_length=254, description="Email address")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)


class RegisterRequest(_EmailField):
    """Self-service registration."""
    password: str = Field(..., min_length=1, max_length=200, description="Password")
    first_name: str = Field(..., min_length=1, max_length=50, description="First name")
    last_name: str = Field(..., min_length=1, max_length=50, description="Last name")
    phone: Optional[str] = Field(None, max_length=32, description="Phone number")
    date_of_birth: Optional[date] = Field(None, description="Date of birth (YYYY-MM-DD)")

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Must not be blank")
        return v


class LoginRequest(_EmailField):
    """Email/password login."""
    password: str = Field(..., min_length=1, max_length=200, description="Password")


class RefreshTokenRequest(BaseModel):
    """Token refresh request."""
    refresh_token: str = Field(..., min_length=1, description="Refresh token")


class ForgotPasswordRequest(_EmailField):
    """Request a password reset link."""


class ResetPasswordRequest(BaseModel):
    """Consume a reset token and set a new password."""
    token: str = Field(..., min_length=1, max_length=128, description="Reset token")
    password: str = Field(..., min_length=1, max_length=200, description="New password")


class VerifyEmailRequest(BaseModel):
    """Consume an email verification token."""
    token: str = Field(..., min_length=1, max_length=128, description="Verification token")


class ResendVerificationRequest(_EmailField):
    """Issue a fresh verification token."""


class ChangePasswordRequest(BaseModel):
    """Change the caller's own password."""
    current_password: str = Field(..., min_length=1, max_length=200, description="Current password")
    new_password: str = Field(..., min_length=1, max_length=200, description="New password")
