"""
Dependency wiring for the auth domain.

build_container() assembles stores and services from the settings and the
database pool; the app factory keeps the result in app.extensions so request
code can reach it with get_container().
"""
from dataclasses import dataclass
from typing import Optional

from flask import current_app

from config.settings import AppSettings
from core.db import DatabaseManager

from .email import EmailService
from .flows import AuthService
from .identity import UserService, UserStore
from .permissions import PermissionService, PermissionStore
from .roles import RoleService, RoleStore
from .tokens import TokenService

EXTENSION_KEY = "hms.auth"


@dataclass(frozen=True)
class AuthContainer:
    settings: AppSettings
    db: DatabaseManager
    tokens: TokenService
    email: EmailService
    users: UserStore
    auth: AuthService
    user_admin: UserService
    roles: RoleService
    permissions: PermissionService


def build_container(
    settings: AppSettings,
    db: DatabaseManager,
    email_service: Optional[EmailService] = None,
    token_service: Optional[TokenService] = None,
) -> AuthContainer:
    """Create every auth collaborator. Pass email_service/token_service to substitute them."""
    tokens = token_service or TokenService.from_settings(settings.auth)
    email = email_service or EmailService(settings.smtp, settings.frontend_url, settings.app_name)

    user_store = UserStore()
    role_store = RoleStore()
    permission_store = PermissionStore()

    return AuthContainer(
        settings=settings,
        db=db,
        tokens=tokens,
        email=email,
        users=user_store,
        auth=AuthService(db, user_store, role_store, tokens, email, settings.auth),
        user_admin=UserService(db, user_store, settings.auth),
        roles=RoleService(db, role_store, permission_store),
        permissions=PermissionService(db, permission_store),
    )


def get_container() -> AuthContainer:
    """The container of the current Flask app."""
    return current_app.extensions[EXTENSION_KEY]
