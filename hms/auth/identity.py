"""
Credential store and user administration.

Handles:
- Users table access (lookup by id, email, verification/reset token)
- Resolving a user into an AuthenticatedPrincipal (active roles, active permissions)
- User administration: list, create, update, soft-delete, role assignment
- Changing one's own password

Every store method takes the connection of the caller's transaction; the
services own transaction boundaries.
"""
import logging
import sqlite3
from typing import Any, Dict, Iterable, List, Optional

from config.settings import AuthSettings
from core.db import DatabaseManager, fetch_page, is_unique_violation, row_to_dict
from core.errors import AuthenticationError, ConflictError, InternalError, NotFoundError, ValidationError
from core.responses import paginate
from core.timestamps import isonow

from .passwords import hash_password, require_strong_password, verify_password
from .schema import new_id
from .types import AuthenticatedPrincipal, PermissionGrant, RoleGrant

logger = logging.getLogger(__name__)

EMAIL_TAKEN_MESSAGE = "User with this email already exists"

# Columns safe to return to API clients
PUBLIC_USER_COLUMNS = (
    "id", "email", "first_name", "last_name", "phone", "date_of_birth", "is_active",
    "email_verified_at", "last_login_at", "created_at", "updated_at",
)

USER_SORT_COLUMNS = {"created_at", "updated_at", "email", "first_name", "last_name", "last_login_at"}

_UPDATABLE_USER_FIELDS = (
    "first_name", "last_name", "phone", "date_of_birth", "is_active",
    "password_hash", "email_verified_at", "email_verification_token",
    "password_reset_token", "password_reset_expires_at",
    "last_login_at", "last_login_ip",
)


def public_user(row: Dict[str, Any], roles: Iterable[RoleGrant] = ()) -> Dict[str, Any]:
    """Strip credential columns from a user row."""
    data = {key: row.get(key) for key in PUBLIC_USER_COLUMNS}
    data["is_active"] = bool(data["is_active"])
    data["email_verified"] = data["email_verified_at"] is not None
    data["roles"] = [{"id": r.id, "name": r.name} for r in roles]
    return data


class UserStore:
    """SQL for the users and user_roles tables."""

    def get_by_id(self, conn: sqlite3.Connection, user_id: str) -> Optional[Dict[str, Any]]:
        return row_to_dict(conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone())

    def get_by_email(self, conn: sqlite3.Connection, email: str) -> Optional[Dict[str, Any]]:
        """Any user with this email, active or not (emails are unique across all users)."""
        return row_to_dict(
            conn.execute("SELECT * FROM users WHERE email = ?", (email.strip().lower(),)).fetchone()
        )

    def get_active_by_email(self, conn: sqlite3.Connection, email: str) -> Optional[Dict[str, Any]]:
        return row_to_dict(conn.execute(
            "SELECT * FROM users WHERE email = ? AND is_active = 1", (email.strip().lower(),)
        ).fetchone())

    def get_active_by_verification_token(self, conn: sqlite3.Connection, token: str) -> Optional[Dict[str, Any]]:
        return row_to_dict(conn.execute(
            "SELECT * FROM users WHERE email_verification_token = ? AND is_active = 1", (token,)
        ).fetchone())

    def get_active_by_reset_token(self, conn: sqlite3.Connection, token: str) -> Optional[Dict[str, Any]]:
        return row_to_dict(conn.execute(
            "SELECT * FROM users WHERE password_reset_token = ? AND is_active = 1", (token,)
        ).fetchone())

    def insert(
        self,
        conn: sqlite3.Connection,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
        date_of_birth: Optional[str] = None,
        email_verified_at: Optional[str] = None,
        email_verification_token: Optional[str] = None,
    ) -> str:
        """Insert a user row. Raises sqlite3.IntegrityError if the email is taken."""
        user_id = new_id()
        now = isonow()
        conn.execute(
            "INSERT INTO users (id, email, password_hash, first_name, last_name, phone, date_of_birth, "
            "is_active, email_verified_at, email_verification_token, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?, ?)",
            (user_id, email.strip().lower(), password_hash, first_name, last_name, phone,
             date_of_birth, email_verified_at, email_verification_token, now, now),
        )
        return user_id

    def update(self, conn: sqlite3.Connection, user_id: str, **fields) -> None:
        """Update whitelisted columns and bump updated_at."""
        updates = []
        params: List[Any] = []
        for column, value in fields.items():
            if column not in _UPDATABLE_USER_FIELDS:
                raise ValueError(f"Column {column!r} is not updatable")
            updates.append(f"{column} = ?")
            params.append(int(value) if isinstance(value, bool) else value)
        if not updates:
            return
        updates.append("updated_at = ?")
        params.extend([isonow(), user_id])
        conn.execute(f"UPDATE users SET {', '.join(updates)} WHERE id = ?", params)  # nosec B608

    def set_roles(self, conn: sqlite3.Connection, user_id: str, role_ids: Iterable[str]) -> None:
        """Replace all role assignments of a user."""
        conn.execute("DELETE FROM user_roles WHERE user_id = ?", (user_id,))
        conn.executemany(
            "INSERT INTO user_roles (user_id, role_id) VALUES (?, ?)",
            [(user_id, role_id) for role_id in role_ids],
        )

    def add_role(self, conn: sqlite3.Connection, user_id: str, role_id: str) -> None:
        conn.execute(
            "INSERT OR IGNORE INTO user_roles (user_id, role_id) VALUES (?, ?)", (user_id, role_id)
        )

    def load_roles(self, conn: sqlite3.Connection, user_id: str) -> tuple[RoleGrant, ...]:
        """Active roles of a user, each with its active permissions."""
        rows = conn.execute(
            """
            SELECT r.id AS role_id, r.name AS role_name,
                   p.id AS perm_id, p.name AS perm_name, p.resource, p.action
            FROM user_roles ur
            JOIN roles r ON r.id = ur.role_id AND r.is_active = 1
            LEFT JOIN role_permissions rp ON rp.role_id = r.id
            LEFT JOIN permissions p ON p.id = rp.permission_id AND p.is_active = 1
            WHERE ur.user_id = ?
            ORDER BY r.name, p.resource, p.action
            """,
            (user_id,),
        ).fetchall()

        roles: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            entry = roles.setdefault(row["role_id"], {"name": row["role_name"], "permissions": []})
            if row["perm_id"] is not None:
                entry["permissions"].append(
                    PermissionGrant(row["perm_id"], row["perm_name"], row["resource"], row["action"])
                )
        return tuple(
            RoleGrant(id=role_id, name=entry["name"], permissions=tuple(entry["permissions"]))
            for role_id, entry in roles.items()
        )

    def load_principal(self, conn: sqlite3.Connection, user_id: str) -> Optional[AuthenticatedPrincipal]:
        """Resolve an active user into a principal; None when missing or inactive."""
        row = self.get_by_id(conn, user_id)
        if row is None or not row["is_active"]:
            return None
        return self.to_principal(conn, row)

    def to_principal(self, conn: sqlite3.Connection, row: Dict[str, Any]) -> AuthenticatedPrincipal:
        return AuthenticatedPrincipal(
            id=row["id"],
            email=row["email"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            is_active=bool(row["is_active"]),
            email_verified=row["email_verified_at"] is not None,
            roles=self.load_roles(conn, row["id"]),
        )

    def list(self, conn: sqlite3.Connection, query) -> tuple[List[Dict[str, Any]], int]:
        where, params = [], []
        if query.search:
            where.append("(email LIKE ? OR first_name LIKE ? OR last_name LIKE ?)")
            params.extend([f"%{query.search}%"] * 3)
        if query.is_active is not None:
            where.append("is_active = ?")
            params.append(int(query.is_active))
        sort_by = query.sort_by if query.sort_by in USER_SORT_COLUMNS else "created_at"
        return fetch_page(
            conn, "SELECT * FROM users", where, params,
            f"{sort_by} {query.sort_order.upper()}", query.page, query.limit,
        )


def existing_role_ids(conn: sqlite3.Connection, role_ids: List[str]) -> List[str]:
    """Raise ValidationError unless every id names an active role."""
    if not role_ids:
        return []
    placeholders = ",".join("?" for _ in role_ids)
    found = {
        r["id"] for r in conn.execute(
            f"SELECT id FROM roles WHERE is_active = 1 AND id IN ({placeholders})",  # nosec B608
            role_ids,
        )
    }
    missing = [i for i in role_ids if i not in found]
    if missing:
        raise ValidationError(
            "Validation failed",
            errors=[{"field": "role_ids", "message": f"Unknown or inactive role ids: {', '.join(missing)}"}],
        )
    return role_ids


class UserService:
    """User administration on top of UserStore."""

    def __init__(self, db: DatabaseManager, users: UserStore, auth_settings: AuthSettings):
        self._db = db
        self._users = users
        self._auth = auth_settings

    def _get_active(self, conn, user_id: str) -> Dict[str, Any]:
        row = self._users.get_by_id(conn, user_id)
        if row is None or not row["is_active"]:
            raise NotFoundError("User not found")
        return row

    def list_users(self, query) -> Dict[str, Any]:
        with self._db.connect() as conn:
            rows, total = self._users.list(conn, query)
            items = [public_user(row, self._users.load_roles(conn, row["id"])) for row in rows]
        return paginate(items, total, query.page, query.limit)

    def get_user(self, user_id: str) -> Dict[str, Any]:
        with self._db.connect() as conn:
            row = self._get_active(conn, user_id)
            return public_user(row, self._users.load_roles(conn, user_id))

    def create_user(self, data) -> Dict[str, Any]:
        """Create an account on behalf of an administrator; it starts verified."""
        require_strong_password(data.password, self._auth)
        password_hash = hash_password(data.password)
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
                    email_verified_at=isonow(),
                )
                self._users.set_roles(conn, user_id, existing_role_ids(conn, data.role_ids))
                row = self._users.get_by_id(conn, user_id)
                roles = self._users.load_roles(conn, user_id)
        except sqlite3.IntegrityError as e:
            if is_unique_violation(e):
                raise ConflictError(EMAIL_TAKEN_MESSAGE) from e
            raise InternalError(f"Integrity check failed: {e}") from e
        logger.info(f"User created: {user_id}")
        return public_user(row, roles)

    def update_user(
        self, user_id: str, changes: Dict[str, Any], acting_user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Apply a partial update; role_ids, when present, replaces all assignments."""
        if changes.get("is_active") is False and acting_user_id == user_id:
            raise ValidationError("You cannot deactivate your own account")
        changes = dict(changes)
        role_ids = changes.pop("role_ids", None)
        if changes.get("date_of_birth") is not None:
            changes["date_of_birth"] = changes["date_of_birth"].isoformat()
        with self._db.transaction() as conn:
            self._get_active(conn, user_id)
            self._users.update(conn, user_id, **changes)
            if role_ids is not None:
                self._users.set_roles(conn, user_id, existing_role_ids(conn, role_ids))
            row = self._users.get_by_id(conn, user_id)
            roles = self._users.load_roles(conn, user_id)
        logger.info(f"User updated: {user_id} ({', '.join(sorted(changes)) or 'roles'})")
        return public_user(row, roles)

    def assign_roles(self, user_id: str, role_ids: List[str]) -> Dict[str, Any]:
        return self.update_user(user_id, {"role_ids": role_ids})

    def delete_user(self, user_id: str, acting_user_id: Optional[str] = None) -> None:
        """Soft-delete a user (is_active = 0)."""
        if acting_user_id is not None and acting_user_id == user_id:
            raise ValidationError("You cannot delete your own account")
        with self._db.connect() as conn:
            self._get_active(conn, user_id)
            self._users.update(conn, user_id, is_active=False)
        logger.info(f"User deactivated: {user_id}")

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        """Change the caller's own password after re-checking the current one."""
        with self._db.connect() as conn:
            row = self._get_active(conn, user_id)
        if not verify_password(current_password, row["password_hash"]):
            raise AuthenticationError("Current password is incorrect")
        require_strong_password(new_password, self._auth, field="new_password")
        with self._db.connect() as conn:
            self._users.update(conn, user_id, password_hash=hash_password(new_password))
        logger.info(f"Password changed for user {user_id}")

