"""
Permission store and administration.

Handles:
- Permission CRUD (soft delete via is_active)
- Batch creation with in-batch duplicate detection and per-item results
- Listing with search/filter/sort/pagination

The partial unique index on permissions(resource, action) WHERE is_active = 1
is the final arbiter for uniqueness: the pre-check only produces a friendlier
error, and a racing insert that slips past it still fails with ConflictError.
"""
import logging
import sqlite3
from collections import defaultdict
from typing import Any, Dict, List, Optional

from core.db import DatabaseManager, fetch_page, is_unique_violation, row_to_dict, rows_to_dicts
from core.errors import APIError, ConflictError, InternalError, NotFoundError, ValidationError
from core.responses import paginate
from core.timestamps import isonow

from .schema import new_id
from .types import BatchResult

logger = logging.getLogger(__name__)

PERMISSION_EXISTS_MESSAGE = "Permission with this resource and action already exists"
BATCH_DUPLICATE_MESSAGE = "Duplicate resource:action combinations found in batch"

PERMISSION_SORT_COLUMNS = {"created_at", "updated_at", "name", "resource", "action"}


def public_permission(row: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(row)
    data["is_active"] = bool(data["is_active"])
    return data


def find_batch_duplicates(items: List[Any]) -> List[Dict[str, str]]:
    """Report every index that shares its (resource, action) with another item."""
    positions = defaultdict(list)
    for index, item in enumerate(items):
        positions[(item.resource, item.action)].append(index)

    errors = []
    for (resource, action), indices in positions.items():
        if len(indices) < 2:
            continue
        for index in indices:
            others = ", ".join(f"permissions[{i}]" for i in indices if i != index)
            errors.append({
                "field": f"permissions[{index}]",
                "message": f'Duplicate resource:action combination "{resource}:{action}" with {others}',
            })
    return sorted(errors, key=lambda e: int(e["field"][len("permissions["):-1]))


class PermissionStore:
    """SQL for the permissions table."""

    def get_active(self, conn: sqlite3.Connection, permission_id: str) -> Optional[Dict[str, Any]]:
        return row_to_dict(conn.execute(
            "SELECT * FROM permissions WHERE id = ? AND is_active = 1", (permission_id,)
        ).fetchone())

    def find_active_by_pair(
        self, conn: sqlite3.Connection, resource: str, action: str, exclude_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        sql = "SELECT * FROM permissions WHERE resource = ? AND action = ? AND is_active = 1"
        params: List[Any] = [resource, action]
        if exclude_id:
            sql += " AND id != ?"
            params.append(exclude_id)
        return row_to_dict(conn.execute(sql, params).fetchone())

    def active_ids(self, conn: sqlite3.Connection, permission_ids: List[str]) -> set:
        if not permission_ids:
            return set()
        placeholders = ",".join("?" for _ in permission_ids)
        rows = conn.execute(
            f"SELECT id FROM permissions WHERE is_active = 1 AND id IN ({placeholders})",  # nosec B608
            permission_ids,
        )
        return {r["id"] for r in rows}

    def insert(self, conn: sqlite3.Connection, name: str, description: Optional[str], resource: str, action: str) -> str:
        """Insert an active permission. Raises sqlite3.IntegrityError on a duplicate pair."""
        permission_id = new_id()
        now = isonow()
        conn.execute(
            "INSERT INTO permissions (id, name, description, resource, action, is_active, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, 1, ?, ?)",
            (permission_id, name, description, resource, action, now, now),
        )
        return permission_id

    def update(self, conn: sqlite3.Connection, permission_id: str, **fields) -> None:
        updates, params = [], []
        for column in ("name", "description", "resource", "action", "is_active"):
            if column in fields:
                value = fields[column]
                updates.append(f"{column} = ?")
                params.append(int(value) if isinstance(value, bool) else value)
        if not updates:
            return
        updates.append("updated_at = ?")
        params.extend([isonow(), permission_id])
        conn.execute(f"UPDATE permissions SET {', '.join(updates)} WHERE id = ?", params)  # nosec B608

    def list(self, conn: sqlite3.Connection, query) -> tuple[List[Dict[str, Any]], int]:
        where, params = [], []
        if query.search:
            where.append("(name LIKE ? OR description LIKE ? OR resource LIKE ? OR action LIKE ?)")
            params.extend([f"%{query.search}%"] * 4)
        if query.resource:
            where.append("resource = ?")
            params.append(query.resource)
        if query.action:
            where.append("action = ?")
            params.append(query.action)
        if query.is_active is not None:
            where.append("is_active = ?")
            params.append(int(query.is_active))
        sort_by = query.sort_by if query.sort_by in PERMISSION_SORT_COLUMNS else "created_at"
        return fetch_page(
            conn, "SELECT * FROM permissions", where, params,
            f"{sort_by} {query.sort_order.upper()}", query.page, query.limit,
        )

    def for_role(self, conn: sqlite3.Connection, role_id: str) -> List[Dict[str, Any]]:
        """Active permissions attached to a role."""
        return rows_to_dicts(conn.execute(
            """
            SELECT p.* FROM role_permissions rp
            JOIN permissions p ON p.id = rp.permission_id AND p.is_active = 1
            WHERE rp.role_id = ?
            ORDER BY p.resource, p.action
            """,
            (role_id,),
        ))


class PermissionService:
    """Permission administration."""

    def __init__(self, db: DatabaseManager, permissions: PermissionStore):
        self._db = db
        self._permissions = permissions

    def list_permissions(self, query) -> Dict[str, Any]:
        with self._db.connect() as conn:
            rows, total = self._permissions.list(conn, query)
        return paginate([public_permission(r) for r in rows], total, query.page, query.limit)

    def get_permission(self, permission_id: str) -> Dict[str, Any]:
        with self._db.connect() as conn:
            row = self._permissions.get_active(conn, permission_id)
        if row is None:
            raise NotFoundError("Permission not found")
        return public_permission(row)

    def create_permission(self, name: str, resource: str, action: str, description: Optional[str] = None) -> Dict[str, Any]:
        """Create a permission; ConflictError if an active one has the same pair."""
        try:
            with self._db.connect() as conn:
                if self._permissions.find_active_by_pair(conn, resource, action):
                    raise ConflictError(PERMISSION_EXISTS_MESSAGE)
                permission_id = self._permissions.insert(conn, name, description, resource, action)
                row = self._permissions.get_active(conn, permission_id)
        except sqlite3.IntegrityError as e:
            if is_unique_violation(e):
                raise ConflictError(PERMISSION_EXISTS_MESSAGE) from e
            raise InternalError(f"Integrity check failed: {e}") from e
        logger.info(f"Permission created: {resource}:{action}")
        return public_permission(row)

    def create_batch(self, items: List[Any]) -> BatchResult:
        """Create many permissions, each in its own transaction.

        The whole batch is rejected before any write when two items share a
        (resource, action) pair. Otherwise every item is attempted and the
        result lists what was created and what failed.
        """
        duplicates = find_batch_duplicates(items)
        if duplicates:
            raise ValidationError(BATCH_DUPLICATE_MESSAGE, errors=duplicates)

        result = BatchResult()
        for index, item in enumerate(items):
            try:
                result.created.append(
                    self.create_permission(item.name, item.resource, item.action, item.description)
                )
                continue
            except APIError as e:
                reason = e.message
            except sqlite3.Error:
                logger.exception(f"Batch item {index} failed")
                reason = "storage error"
            result.failed.append({
                "index": index,
                "field": f"permissions[{index}]",
                "message": f"{item.name} ({item.resource}:{item.action}): {reason}",
            })

        logger.info(f"Permission batch: {len(result.created)} created, {len(result.failed)} failed")
        return result

    def update_permission(self, permission_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Partial update; re-checks pair uniqueness when resource or action changes."""
        try:
            with self._db.transaction() as conn:
                row = self._permissions.get_active(conn, permission_id)
                if row is None:
                    raise NotFoundError("Permission not found")
                resource = changes.get("resource", row["resource"])
                action = changes.get("action", row["action"])
                if (resource, action) != (row["resource"], row["action"]):
                    if self._permissions.find_active_by_pair(conn, resource, action, exclude_id=permission_id):
                        raise ConflictError(PERMISSION_EXISTS_MESSAGE)
                self._permissions.update(conn, permission_id, **changes)
                row = row_to_dict(conn.execute(
                    "SELECT * FROM permissions WHERE id = ?", (permission_id,)
                ).fetchone())
        except sqlite3.IntegrityError as e:
            if is_unique_violation(e):
                raise ConflictError(PERMISSION_EXISTS_MESSAGE) from e
            raise InternalError(f"Integrity check failed: {e}") from e
        logger.info(f"Permission updated: {permission_id}")
        return public_permission(row)

    def delete_permission(self, permission_id: str) -> None:
        """Soft-delete (is_active = 0); role links stay but stop granting anything."""
        with self._db.connect() as conn:
            if self._permissions.get_active(conn, permission_id) is None:
                raise NotFoundError("Permission not found")
            self._permissions.update(conn, permission_id, is_active=False)
        logger.info(f"Permission deactivated: {permission_id}")
