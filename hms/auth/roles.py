"""
Role store and administration.

A role's permission list is replaced wholesale (delete-all, insert-given)
inside the same transaction as the role write. System roles cannot be
deleted or deactivated.
"""
import logging
import sqlite3
from typing import Any, Dict, List, Optional

from core.db import DatabaseManager, fetch_page, is_unique_violation, row_to_dict
from core.errors import ConflictError, InternalError, NotFoundError, ValidationError
from core.responses import paginate
from core.timestamps import isonow

from .permissions import PermissionStore, public_permission
from .schema import new_id

logger = logging.getLogger(__name__)

ROLE_EXISTS_MESSAGE = "Role with this name already exists"
SYSTEM_ROLE_DELETE_MESSAGE = "System roles cannot be deleted"

ROLE_SORT_COLUMNS = {"created_at", "updated_at", "name"}


def public_role(row: Dict[str, Any], permissions: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    data = dict(row)
    data["is_active"] = bool(data["is_active"])
    data["is_system_role"] = bool(data["is_system_role"])
    if permissions is not None:
        data["permissions"] = [public_permission(p) for p in permissions]
    return data


class RoleStore:
    """SQL for the roles and role_permissions tables."""

    def get(self, conn: sqlite3.Connection, role_id: str) -> Optional[Dict[str, Any]]:
        return row_to_dict(conn.execute("SELECT * FROM roles WHERE id = ?", (role_id,)).fetchone())

    def get_active(self, conn: sqlite3.Connection, role_id: str) -> Optional[Dict[str, Any]]:
        return row_to_dict(conn.execute(
            "SELECT * FROM roles WHERE id = ? AND is_active = 1", (role_id,)
        ).fetchone())

    def find_by_name(
        self, conn: sqlite3.Connection, name: str, exclude_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Role with this name, active or not (names are unique across all roles)."""
        sql = "SELECT * FROM roles WHERE name = ?"
        params: List[Any] = [name]
        if exclude_id:
            sql += " AND id != ?"
            params.append(exclude_id)
        return row_to_dict(conn.execute(sql, params).fetchone())

    def find_active_by_name(self, conn: sqlite3.Connection, name: str) -> Optional[Dict[str, Any]]:
        return row_to_dict(conn.execute(
            "SELECT * FROM roles WHERE name = ? AND is_active = 1", (name,)
        ).fetchone())

    def insert(
        self, conn: sqlite3.Connection, name: str, description: Optional[str], is_system_role: bool = False
    ) -> str:
        role_id = new_id()
        now = isonow()
        conn.execute(
            "INSERT INTO roles (id, name, description, is_active, is_system_role, created_at, updated_at) "
            "VALUES (?, ?, ?, 1, ?, ?, ?)",
            (role_id, name, description, int(is_system_role), now, now),
        )
        return role_id

    def update(self, conn: sqlite3.Connection, role_id: str, **fields) -> None:
        updates, params = [], []
        for column in ("name", "description", "is_active", "is_system_role"):
            if column in fields:
                value = fields[column]
                updates.append(f"{column} = ?")
                params.append(int(value) if isinstance(value, bool) else value)
        if not updates:
            return
        updates.append("updated_at = ?")
        params.extend([isonow(), role_id])
        conn.execute(f"UPDATE roles SET {', '.join(updates)} WHERE id = ?", params)  # nosec B608

    def set_permissions(self, conn: sqlite3.Connection, role_id: str, permission_ids: List[str]) -> None:
        """Replace the role's permission set."""
        conn.execute("DELETE FROM role_permissions WHERE role_id = ?", (role_id,))
        conn.executemany(
            "INSERT INTO role_permissions (role_id, permission_id) VALUES (?, ?)",
            [(role_id, pid) for pid in permission_ids],
        )

    def list(self, conn: sqlite3.Connection, query) -> tuple[List[Dict[str, Any]], int]:
        where, params = [], []
        if query.search:
            where.append("(name LIKE ? OR description LIKE ?)")
            params.extend([f"%{query.search}%"] * 2)
        if query.is_active is not None:
            where.append("is_active = ?")
            params.append(int(query.is_active))
        sort_by = query.sort_by if query.sort_by in ROLE_SORT_COLUMNS else "created_at"
        return fetch_page(
            conn, "SELECT * FROM roles", where, params,
            f"{sort_by} {query.sort_order.upper()}", query.page, query.limit,
        )


class RoleService:
    """Role administration."""

    def __init__(self, db: DatabaseManager, roles: RoleStore, permissions: PermissionStore):
        self._db = db
        self._roles = roles
        self._permissions = permissions

    def _check_permission_ids(self, conn, permission_ids: List[str]) -> List[str]:
        found = self._permissions.active_ids(conn, permission_ids)
        missing = [pid for pid in permission_ids if pid not in found]
        if missing:
            raise ValidationError(
                "Validation failed",
                errors=[{
                    "field": "permission_ids",
                    "message": f"Unknown or inactive permission ids: {', '.join(missing)}",
                }],
            )
        return permission_ids

    def _with_permissions(self, conn, row: Dict[str, Any]) -> Dict[str, Any]:
        return public_role(row, self._permissions.for_role(conn, row["id"]))

    def list_roles(self, query) -> Dict[str, Any]:
        with self._db.connect() as conn:
            rows, total = self._roles.list(conn, query)
            items = [self._with_permissions(conn, r) for r in rows]
        return paginate(items, total, query.page, query.limit)

    def get_role(self, role_id: str) -> Dict[str, Any]:
        with self._db.connect() as conn:
            row = self._roles.get_active(conn, role_id)
            if row is None:
                raise NotFoundError("Role not found")
            return self._with_permissions(conn, row)

    def create_role(
        self,
        name: str,
        description: Optional[str] = None,
        is_system_role: bool = False,
        permission_ids: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Create a role and attach its permissions in one transaction."""
        try:
            with self._db.transaction() as conn:
                if self._roles.find_by_name(conn, name):
                    raise ConflictError(ROLE_EXISTS_MESSAGE)
                role_id = self._roles.insert(conn, name, description, is_system_role)
                if permission_ids:
                    self._roles.set_permissions(
                        conn, role_id, self._check_permission_ids(conn, permission_ids)
                    )
                role = self._with_permissions(conn, self._roles.get(conn, role_id))
        except sqlite3.IntegrityError as e:
            if is_unique_violation(e):
                raise ConflictError(ROLE_EXISTS_MESSAGE) from e
            raise InternalError(f"Integrity check failed: {e}") from e
        logger.info(f"Role created: {name} ({len(role['permissions'])} permissions)")
        return role

    def update_role(self, role_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Partial update; permission_ids, when present, replaces the whole set."""
        changes = dict(changes)
        permission_ids = changes.pop("permission_ids", None)
        try:
            with self._db.transaction() as conn:
                row = self._roles.get_active(conn, role_id)
                if row is None:
                    raise NotFoundError("Role not found")
                is_system = changes.get("is_system_role", bool(row["is_system_role"]))
                if changes.get("is_active") is False and is_system:
                    raise ValidationError("System roles cannot be deactivated")
                new_name = changes.get("name")
                if new_name and new_name != row["name"] and self._roles.find_by_name(conn, new_name, exclude_id=role_id):
                    raise ConflictError(ROLE_EXISTS_MESSAGE)
                self._roles.update(conn, role_id, **changes)
                if permission_ids is not None:
                    self._roles.set_permissions(
                        conn, role_id, self._check_permission_ids(conn, permission_ids)
                    )
                role = self._with_permissions(conn, self._roles.get(conn, role_id))
        except sqlite3.IntegrityError as e:
            if is_unique_violation(e):
                raise ConflictError(ROLE_EXISTS_MESSAGE) from e
            raise InternalError(f"Integrity check failed: {e}") from e
        logger.info(f"Role updated: {role['name']}")
        return role

    def delete_role(self, role_id: str) -> None:
        """Soft-delete a role. System roles are refused and left untouched."""
        with self._db.connect() as conn:
            row = self._roles.get_active(conn, role_id)
            if row is None:
                raise NotFoundError("Role not found")
            if row["is_system_role"]:
                raise ValidationError(SYSTEM_ROLE_DELETE_MESSAGE)
            self._roles.update(conn, role_id, is_active=False)
        logger.info(f"Role deactivated: {row['name']}")
