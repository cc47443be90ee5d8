"""
JWT token creation and validation.

Handles:
- Access token issuing and verification (identity + role/permission claims)
- Refresh token issuing and verification (identity + "refresh" marker)
- Non-verifying decode for diagnostics
- Bearer token extraction from the current request

Access and refresh tokens are signed with separate secrets so one can never
be replayed as the other.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import jwt
from flask import request

from config.settings import AuthSettings
from core.errors import AuthenticationError

from .types import RefreshPayload, TokenPayload

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class InvalidTokenError(AuthenticationError):
    """Token signature, issuer, audience, type or expiry check failed."""


def _ts(value) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


class TokenService:
    """Mints and verifies signed access/refresh tokens.

    Pure function of its inputs, the signing secrets and the wall clock; it
    never touches storage.
    """

    def __init__(
        self,
        secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(days=7),
        refresh_ttl: timedelta = timedelta(days=30),
        issuer: str = "hms-api",
        audience: str = "hms-users",
    ):
        if not secret or not refresh_secret:
            raise ValueError("Both access and refresh signing secrets are required")
        self._secret = secret
        self._refresh_secret = refresh_secret
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.issuer = issuer
        self.audience = audience

    @classmethod
    def from_settings(cls, auth: AuthSettings) -> "TokenService":
        return cls(
            secret=auth.jwt_secret.get_secret_value(),
            refresh_secret=auth.jwt_refresh_secret.get_secret_value(),
            algorithm=auth.jwt_algorithm,
            access_ttl=auth.access_token_ttl,
            refresh_ttl=auth.refresh_token_ttl,
            issuer=auth.jwt_issuer,
            audience=auth.jwt_audience,
        )

    @property
    def access_expires_in(self) -> int:
        """Access-token lifetime in seconds, as reported to clients."""
        return max(int(self.access_ttl.total_seconds()), 0)

    # =========================================================================
    # Issuing
    # =========================================================================

    def issue_access_token(
        self,
        subject_id: str,
        email: str,
        role_names: Sequence[str],
        permission_keys: Sequence[str],
    ) -> str:
        """Create an access token.

        Args:
            subject_id: User id
            email: User email
            role_names: Names of the user's active roles
            permission_keys: Flattened "resource:action" strings

        Returns:
            Encoded JWT access token
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject_id,
            "email": email,
            "roles": list(role_names),
            "permissions": list(permission_keys),
            "jti": str(uuid.uuid4()),
            "type": ACCESS_TOKEN_TYPE,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "exp": now + self.access_ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def issue_refresh_token(self, subject_id: str) -> str:
        """Create a refresh token carrying only the subject and type marker."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject_id,
            "type": REFRESH_TOKEN_TYPE,
            "jti": str(uuid.uuid4()),
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "exp": now + self.refresh_ttl,
        }
        return jwt.encode(payload, self._refresh_secret, algorithm=self.algorithm)

    # =========================================================================
    # Verification
    # =========================================================================

    def _verify(self, token: str, secret: str) -> dict:
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=self.audience,
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidTokenError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e}")

    def verify_access_token(self, token: str) -> TokenPayload:
        """Verify signature, issuer, audience and expiry of an access token.

        Raises:
            InvalidTokenError: on any failed check
        """
        payload = self._verify(token, self._secret)
        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise InvalidTokenError("Not an access token")
        return TokenPayload(
            sub=payload["sub"],
            email=payload.get("email", ""),
            roles=tuple(payload.get("roles", ())),
            permissions=tuple(payload.get("permissions", ())),
            exp=_ts(payload["exp"]),
            iat=_ts(payload["iat"]),
            jti=payload.get("jti", ""),
            token_type=payload["type"],
        )

    def verify_refresh_token(self, token: str) -> RefreshPayload:
        """Verify a refresh token. Callers must still check token_type == "refresh"."""
        payload = self._verify(token, self._refresh_secret)
        return RefreshPayload(
            sub=payload["sub"],
            token_type=payload.get("type", ""),
            exp=_ts(payload.get("exp")),
        )

    @staticmethod
    def decode(token: str) -> dict | None:
        """Decode without verifying anything. Diagnostics only, never for authorization."""
        try:
            return jwt.decode(token, options={"verify_signature": False})
        except jwt.DecodeError:
            return None


# =============================================================================
# Request Helpers
# =============================================================================

def get_token_from_request() -> str | None:
    """Extract the bearer token from the Authorization header.

    Returns:
        Token string or None if the header is missing or malformed
    """
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
