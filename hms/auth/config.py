"""
Auth seed data - no dependencies on other auth modules.

Runtime configuration lives in config.settings and is injected; this module
only holds the reference data written on first start.
"""

# =============================================================================
# System Role Names
# =============================================================================

SUPER_ADMIN_ROLE = "SUPER_ADMIN"
ADMIN_ROLE = "ADMIN"
PATIENT_ROLE = "PATIENT"

# =============================================================================
# Default Permissions and Roles
# =============================================================================

_CRUD = ("view", "create", "update", "delete")

# (name, description, resource, action)
DEFAULT_PERMISSIONS = [
    ("ALL_ACCESS", "Unrestricted access to every resource", "*", "*"),
    *[
        (f"{resource.upper()}_{action.upper()}", f"{action.capitalize()} {resource}s", resource, action)
        for resource in ("role", "permission", "user")
        for action in _CRUD
    ],
]

# Default roles created on database initialization. Permissions are
# (resource, action) pairs resolved against DEFAULT_PERMISSIONS.
DEFAULT_ROLES = {
    SUPER_ADMIN_ROLE: {
        "description": "Unrestricted system administrator",
        "is_system_role": True,
        "permissions": [("*", "*")],
    },
    ADMIN_ROLE: {
        "description": "Manages users, roles and permissions",
        "is_system_role": True,
        "permissions": [
            (resource, action)
            for resource in ("role", "permission", "user")
            for action in _CRUD
        ],
    },
    PATIENT_ROLE: {
        "description": "Default role for self-registered accounts",
        "is_system_role": True,
        "permissions": [],
    },
}
