"""
Password hashing, verification, strength validation and single-use tokens.

Handles:
- Password hashing (werkzeug, salted scrypt)
- Constant-time password verification
- Password strength validation against the configured policy
- Random tokens for email verification and password reset
"""
import re
import secrets

from werkzeug.security import generate_password_hash, check_password_hash

from config.settings import AuthSettings
from core.errors import ValidationError

__all__ = [
    "hash_password",
    "verify_password",
    "burn_password_check",
    "validate_password_strength",
    "require_strong_password",
    "generate_secure_token",
]

SPECIAL_CHARACTERS = r"[!@#$%^&*(),.?\":{}|<>_\-]"

# Compared against when the account does not exist so both branches of a
# failed login cost one hash verification.
_DUMMY_HASH = generate_password_hash(secrets.token_urlsafe(16))


def hash_password(password: str) -> str:
    """Hash a password.

    Args:
        password: Plain text password

    Returns:
        Salted hash of the password
    """
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash (constant-time comparison).

    Args:
        password: Plain text password
        password_hash: Hash to check against

    Returns:
        True if password matches, False otherwise
    """
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


def burn_password_check(password: str) -> None:
    """Spend the same work as verify_password for an unknown account."""
    check_password_hash(_DUMMY_HASH, password)


def validate_password_strength(password: str, policy: AuthSettings) -> tuple[bool, str]:
    """Validate password meets complexity requirements.

    Args:
        password: Password to validate
        policy: Auth settings carrying the password policy flags

    Returns:
        (is_valid, error_message) tuple
    """
    if len(password) < policy.password_min_length:
        return False, f"Password must be at least {policy.password_min_length} characters"

    if policy.password_require_uppercase and not re.search(r"[A-Z]", password):
        return False, "Password must contain at least one uppercase letter"

    if policy.password_require_lowercase and not re.search(r"[a-z]", password):
        return False, "Password must contain at least one lowercase letter"

    if policy.password_require_digit and not re.search(r"\d", password):
        return False, "Password must contain at least one digit"

    if policy.password_require_special and not re.search(SPECIAL_CHARACTERS, password):
        return False, "Password must contain at least one special character"

    return True, ""


def require_strong_password(password: str, policy: AuthSettings, field: str = "password") -> None:
    """Raise ValidationError when the password fails the policy."""
    valid, message = validate_password_strength(password, policy)
    if not valid:
        raise ValidationError("Validation failed", errors=[{"field": field, "message": message}])


def generate_secure_token(nbytes: int = 32) -> str:
    """Hex token for single-use email verification and password reset links."""
    return secrets.token_hex(nbytes)
