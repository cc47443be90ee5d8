"""
Auth domain types - no dependencies on other auth modules.

NOTE: Keep this minimal. Only add types here if they are shared by several
auth submodules and would otherwise cause circular imports.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

WILDCARD = "*"


def permission_matches(granted_resource: str, granted_action: str, resource: str, action: str) -> bool:
    """Per-field exact-or-wildcard match, ANDed across resource and action."""
    return (
        (granted_resource == resource or granted_resource == WILDCARD)
        and (granted_action == action or granted_action == WILDCARD)
    )


@dataclass(frozen=True)
class PermissionGrant:
    """An active permission reachable through one of the principal's roles."""
    id: str
    name: str
    resource: str
    action: str

    @property
    def key(self) -> str:
        return f"{self.resource}:{self.action}"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "resource": self.resource, "action": self.action}


@dataclass(frozen=True)
class RoleGrant:
    """An active role held by the principal, with its active permissions."""
    id: str
    name: str
    permissions: tuple[PermissionGrant, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "permissions": [p.to_dict() for p in self.permissions],
        }


@dataclass(frozen=True)
class AuthenticatedPrincipal:
    """A user resolved together with its active roles and their active permissions.

    Built per request by the authorization middleware and at login/refresh
    time; never persisted.
    """
    id: str
    email: str
    first_name: str
    last_name: str
    is_active: bool
    roles: tuple[RoleGrant, ...] = ()
    email_verified: bool = False

    @property
    def role_names(self) -> list[str]:
        return [r.name for r in self.roles]

    @property
    def permission_keys(self) -> list[str]:
        """Flattened, de-duplicated "resource:action" strings in role order."""
        seen: dict[str, None] = {}
        for role in self.roles:
            for perm in role.permissions:
                seen.setdefault(perm.key, None)
        return list(seen)

    def has_role(self, *names: str) -> bool:
        return any(role.name in names for role in self.roles)

    def has_permission(self, resource: str, action: str) -> bool:
        return any(
            permission_matches(perm.resource, perm.action, resource, action)
            for role in self.roles
            for perm in role.permissions
        )

    def has_any_permission(self, pairs) -> bool:
        return any(self.has_permission(resource, action) for resource, action in pairs)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "is_active": self.is_active,
            "email_verified": self.email_verified,
            "roles": [r.to_dict() for r in self.roles],
        }


@dataclass(frozen=True)
class TokenPayload:
    """Verified access-token claims (immutable)."""
    sub: str  # user id
    email: str
    roles: tuple[str, ...]
    permissions: tuple[str, ...]
    exp: datetime
    iat: datetime
    jti: str
    token_type: str = "access"


@dataclass(frozen=True)
class RefreshPayload:
    """Verified refresh-token claims."""
    sub: str
    token_type: str
    exp: Optional[datetime] = None


@dataclass
class BatchResult:
    """Outcome of a batch permission create."""
    created: list = field(default_factory=list)
    failed: list = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed
