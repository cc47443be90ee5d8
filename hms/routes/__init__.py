"""
Route blueprints for the HMS API.

Every blueprint except health is mounted under the configured API prefix.
"""

from .health import health_bp
from .auth_routes import auth_bp
from .roles import roles_bp
from .permissions import permissions_bp
from .users import users_bp

__all__ = ['health_bp', 'auth_bp', 'roles_bp', 'permissions_bp', 'users_bp']
