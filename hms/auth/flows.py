"""
Authentication flows.

Handles:
- Registration (user row + default role in one transaction, verification email after commit)
- Login (coarsened failures, constant work for unknown accounts)
- Access-token refresh from current storage state
- Forgot / reset password with a time-boxed single-use token
- Email verification and resending the verification token

Emails are always sent after the write has committed; a failed send is
logged and never fails the flow.
"""
import logging
import sqlite3
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from config.settings import AuthSettings
from core.db import DatabaseManager, is_unique_violation
from core.errors import AuthenticationError, ConflictError, InternalError, NotFoundError, ValidationError
from core.timestamps import iso_in, isonow, is_past

from .email import EmailDeliveryError, EmailService
from .identity import EMAIL_TAKEN_MESSAGE, UserStore, public_user
from .passwords import (
    burn_password_check,
    generate_secure_token,
    hash_password,
    require_strong_password,
    verify_password,
)
from .roles import RoleStore
from .tokens import REFRESH_TOKEN_TYPE, InvalidTokenError, TokenService
from .types import AuthenticatedPrincipal

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
EMAIL_NOT_VERIFIED = "Please verify your email before logging in"
INVALID_REFRESH_TOKEN = "Invalid refresh token"


class AuthService:
    """Login, registration, password reset and email verification."""

    def __init__(
        self,
        db: DatabaseManager,
        users: UserStore,
        roles: RoleStore,
        tokens: TokenService,
        email: EmailService,
        auth_settings: AuthSettings,
    ):
        self._db = db
        self._users = users
        self._roles = roles
        self._tokens = tokens
        self._email = email
        self._auth = auth_settings

    # =========================================================================
    # Helpers
    # =========================================================================

    def _send_best_effort(self, description: str, send: Callable[[], None]) -> bool:
        try:
            send()
            return True
        except EmailDeliveryError as e:
            logger.error(f"Failed to send {description}: {e}")
            return False
        except Exception:
            logger.exception(f"Unexpected error sending {description}")
            return False

    def _token_pair(self, principal: AuthenticatedPrincipal) -> Dict[str, Any]:
        return {
            "access_token": self._tokens.issue_access_token(
                principal.id, principal.email, principal.role_names, principal.permission_keys
            ),
            "refresh_token": self._tokens.issue_refresh_token(principal.id),
            "expires_in": self._tokens.access_expires_in,
        }

    # =========================================================================
    # Registration
    # =========================================================================

    def register(self, data) -> Dict[str, Any]:
        """Create an unverified account holding the default role.

        Raises:
            ConflictError: email already registered
            ValidationError: password fails the policy
        """
        require_strong_password(data.password, self._auth)
        password_hash = hash_password(data.password)
        verification_token = generate_secure_token()

        try:
            with self._db.transaction() as conn:
                if self._users.get_by_email(conn, data.email):
                    raise ConflictError(EMAIL_TAKEN_MESSAGE)
                user_id = self._users.insert(
                    conn,
                    email=data.email,
                    password_hash=password_hash,
                    first_name=data.first_name,
                    last_name=data.last_name,
                    phone=data.phone,
                    date_of_birth=data.date_of_birth.isoformat() if data.date_of_birth else None,
                    email_verification_token=verification_token,
                )
                default_role = self._roles.find_active_by_name(conn, self._auth.default_role)
                if default_role:
                    self._users.add_role(conn, user_id, default_role["id"])
                else:
                    logger.warning(f"Default role {self._auth.default_role!r} missing; user {user_id} has no role")
                row = self._users.get_by_id(conn, user_id)
        except sqlite3.IntegrityError as e:
            if is_unique_violation(e):
                raise ConflictError(EMAIL_TAKEN_MESSAGE) from e
            raise InternalError(f"Integrity check failed: {e}") from e

        logger.info(f"User registered: {user_id}")
        self._send_best_effort(
            f"verification email to user {user_id}",
            lambda: self._email.send_verification_email(row["email"], verification_token, row["first_name"]),
        )
        return {
            "id": row["id"],
            "email": row["email"],
            "first_name": row["first_name"],
            "last_name": row["last_name"],
        }

    # =========================================================================
    # Login / Refresh
    # =========================================================================

    def login(self, email: str, password: str, ip_address: Optional[str] = None) -> Dict[str, Any]:
        """Authenticate with email and password.

        Unknown account and wrong password both fail with the same message.
        """
        with self._db.connect() as conn:
            row = self._users.get_active_by_email(conn, email)

        if row is None:
            burn_password_check(password)
            logger.warning("Login failed: unknown or inactive account")
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not verify_password(password, row["password_hash"]):
            logger.warning(f"Login failed: bad password for user {row['id']}")
            raise AuthenticationError(INVALID_CREDENTIALS)

        if row["email_verified_at"] is None:
            logger.info(f"Login refused: email not verified for user {row['id']}")
            raise AuthenticationError(EMAIL_NOT_VERIFIED)

        with self._db.connect() as conn:
            self._users.update(conn, row["id"], last_login_at=isonow(), last_login_ip=ip_address)
            principal = self._users.to_principal(conn, self._users.get_by_id(conn, row["id"]))

        logger.info(f"Login successful: user {principal.id}")
        return {"user": principal.to_dict(), **self._token_pair(principal)}

    def refresh(self, refresh_token: str) -> Dict[str, Any]:
        """Mint a new access token from the user's current roles. The refresh token is not rotated."""
        try:
            claims = self._tokens.verify_refresh_token(refresh_token)
        except InvalidTokenError as e:
            logger.info(f"Refresh rejected: {e.message}")
            raise AuthenticationError(INVALID_REFRESH_TOKEN)
        if claims.token_type != REFRESH_TOKEN_TYPE:
            raise AuthenticationError(INVALID_REFRESH_TOKEN)

        with self._db.connect() as conn:
            principal = self._users.load_principal(conn, claims.sub)
        if principal is None:
            raise AuthenticationError("User not found or inactive")

        return {
            "access_token": self._tokens.issue_access_token(
                principal.id, principal.email, principal.role_names, principal.permission_keys
            ),
            "expires_in": self._tokens.access_expires_in,
        }

    # =========================================================================
    # Password Reset
    # =========================================================================

    def forgot_password(self, email: str) -> None:
        """Issue a reset token. Unknown emails return silently."""
        token = generate_secure_token()
        with self._db.connect() as conn:
            row = self._users.get_active_by_email(conn, email)
            if row is None:
                logger.warning("Password reset requested for unknown or inactive email")
                return
            self._users.update(
                conn,
                row["id"],
                password_reset_token=token,
                password_reset_expires_at=iso_in(timedelta(minutes=self._auth.password_reset_expiry_minutes)),
            )

        logger.info(f"Password reset token issued for user {row['id']}")
        self._send_best_effort(
            f"password reset email to user {row['id']}",
            lambda: self._email.send_password_reset_email(row["email"], token, row["first_name"]),
        )

    def reset_password(self, token: str, new_password: str) -> None:
        """Consume a reset token and store the new password hash."""
        # lookup and clear share one write-locked transaction so a token is consumed once
        with self._db.transaction() as conn:
            row = self._users.get_active_by_reset_token(conn, token)
            if row is None or not row["password_reset_expires_at"]:
                raise ValidationError("Invalid or expired reset token")
            if is_past(row["password_reset_expires_at"]):
                raise ValidationError("Reset token has expired")

            require_strong_password(new_password, self._auth)
            self._users.update(
                conn,
                row["id"],
                password_hash=hash_password(new_password),
                password_reset_token=None,
                password_reset_expires_at=None,
            )
        logger.info(f"Password reset for user {row['id']}")

    # =========================================================================
    # Email Verification
    # =========================================================================

    def verify_email(self, token: str) -> None:
        """Consume a verification token and mark the email verified."""
        with self._db.transaction() as conn:
            row = self._users.get_active_by_verification_token(conn, token)
            if row is None:
                raise ValidationError("Invalid verification token")
            if row["email_verified_at"] is not None:
                raise ValidationError("Email is already verified")
            self._users.update(conn, row["id"], email_verified_at=isonow(), email_verification_token=None)

        logger.info(f"Email verified for user {row['id']}")
        self._send_best_effort(
            f"welcome email to user {row['id']}",
            lambda: self._email.send_welcome_email(row["email"], row["first_name"]),
        )

    def resend_verification(self, email: str) -> None:
        """Replace the verification token and send it again."""
        token = generate_secure_token()
        with self._db.connect() as conn:
            row = self._users.get_active_by_email(conn, email)
            if row is None:
                raise NotFoundError("User not found")
            if row["email_verified_at"] is not None:
                raise ValidationError("Email is already verified")
            self._users.update(conn, row["id"], email_verification_token=token)

        self._send_best_effort(
            f"verification email to user {row['id']}",
            lambda: self._email.send_verification_email(row["email"], token, row["first_name"]),
        )

    # =========================================================================
    # Logout / Profile
    # =========================================================================

    def logout(self, principal: AuthenticatedPrincipal) -> None:
        """Tokens are stateless; logging out is only recorded."""
        logger.info(f"User logged out: {principal.id}")

    def profile(self, principal: AuthenticatedPrincipal) -> Dict[str, Any]:
        with self._db.connect() as conn:
            row = self._users.get_by_id(conn, principal.id)
        data = public_user(row, principal.roles)
        data["roles"] = [r.to_dict() for r in principal.roles]
        return data
