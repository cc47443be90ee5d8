"""
Authentication endpoints for the HMS API.

Provides registration, login, token refresh, password reset, email
verification, logout and the caller's profile.
Rate limits are applied to these endpoints by the app factory.
"""

from flask import Blueprint, g, request

from core.responses import success_response
from hms.auth import get_container, jwt_required
from hms.schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    VerifyEmailRequest,
    parse_body,
)

# Create blueprint
auth_bp = Blueprint('auth', __name__, url_prefix='/auth')

# Endpoints that get the stricter auth / password rate limits
AUTH_LIMITED_ENDPOINTS = ('auth.register', 'auth.login', 'auth.refresh_token')
PASSWORD_LIMITED_ENDPOINTS = ('auth.forgot_password', 'auth.reset_password')


# =============================================================================
# Registration / Verification
# =============================================================================

@auth_bp.route('/register', methods=['POST'])
def register():
    """Create an account; a verification email is sent best-effort."""
    data = parse_body(RegisterRequest, request.get_json(silent=True))
    user = get_container().auth.register(data)
    return success_response(
        user,
        "Registration successful. Please check your email to verify your account.",
        201,
    )


@auth_bp.route('/verify-email', methods=['POST'])
def verify_email():
    data = parse_body(VerifyEmailRequest, request.get_json(silent=True))
    get_container().auth.verify_email(data.token)
    return success_response(message="Email verified successfully")


@auth_bp.route('/resend-verification', methods=['POST'])
def resend_verification():
    data = parse_body(ResendVerificationRequest, request.get_json(silent=True))
    get_container().auth.resend_verification(data.email)
    return success_response(message="Verification email sent")


# =============================================================================
# Login / Logout / Token Management
# =============================================================================

@auth_bp.route('/login', methods=['POST'])
def login():
    """Authenticate with email and password and return an access/refresh token pair."""
    data = parse_body(LoginRequest, request.get_json(silent=True))
    result = get_container().auth.login(data.email, data.password, ip_address=request.remote_addr)
    return success_response(result, "Login successful")


@auth_bp.route('/refresh-token', methods=['POST'])
def refresh_token():
    """Exchange a refresh token for a new access token."""
    data = parse_body(RefreshTokenRequest, request.get_json(silent=True))
    result = get_container().auth.refresh(data.refresh_token)
    return success_response(result, "Token refreshed successfully")


@auth_bp.route('/logout', methods=['POST'])
@jwt_required
def logout():
    """Stateless: clients drop their tokens; the event is only logged."""
    get_container().auth.logout(g.principal)
    return success_response(message="Logged out successfully")


@auth_bp.route('/profile', methods=['GET'])
@jwt_required
def profile():
    return success_response(get_container().auth.profile(g.principal), "Profile retrieved successfully")


# =============================================================================
# Password Reset
# =============================================================================

@auth_bp.route('/forgot-password', methods=['POST'])
def forgot_password():
    """Always answers the same way, whether or not the account exists."""
    data = parse_body(ForgotPasswordRequest, request.get_json(silent=True))
    get_container().auth.forgot_password(data.email)
    return success_response(
        message="If an account with that email exists, a password reset link has been sent."
    )


@auth_bp.route('/reset-password', methods=['POST'])
def reset_password():
    data = parse_body(ResetPasswordRequest, request.get_json(silent=True))
    get_container().auth.reset_password(data.token, data.password)
    return success_response(message="Password reset successful")
