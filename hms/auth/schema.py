"""
Auth database schema initialization and seed data.

IMPORTANT: initialize() should ONLY be called by:
- hms/app.py at startup
- Test fixtures

Never call schema initialization from feature code (routes, decorators, etc.).
"""
import logging
import sqlite3
import uuid

from config.settings import AuthSettings
from core.db import DatabaseManager
from core.timestamps import isonow

from .config import DEFAULT_PERMISSIONS, DEFAULT_ROLES, SUPER_ADMIN_ROLE
from .passwords import hash_password

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL COLLATE NOCASE,
    password_hash TEXT NOT NULL,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    phone TEXT,
    date_of_birth TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    email_verified_at TEXT,
    email_verification_token TEXT,
    password_reset_token TEXT,
    password_reset_expires_at TEXT,
    last_login_at TEXT,
    last_login_ip TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_users_email ON users (email);
CREATE INDEX IF NOT EXISTS ix_users_verification_token ON users (email_verification_token);
CREATE INDEX IF NOT EXISTS ix_users_reset_token ON users (password_reset_token);

CREATE TABLE IF NOT EXISTS roles (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    is_system_role INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_roles_name ON roles (name);

CREATE TABLE IF NOT EXISTS permissions (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    resource TEXT NOT NULL,
    action TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_permissions_resource_action
    ON permissions (resource, action) WHERE is_active = 1;

CREATE TABLE IF NOT EXISTS role_permissions (
    role_id TEXT NOT NULL,
    permission_id TEXT NOT NULL,
    PRIMARY KEY (role_id, permission_id),
    FOREIGN KEY (role_id) REFERENCES roles(id) ON DELETE CASCADE,
    FOREIGN KEY (permission_id) REFERENCES permissions(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS user_roles (
    user_id TEXT NOT NULL,
    role_id TEXT NOT NULL,
    PRIMARY KEY (user_id, role_id),
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY (role_id) REFERENCES roles(id) ON DELETE CASCADE
);
"""


def new_id() -> str:
    """Opaque identifier for every stored entity."""
    return str(uuid.uuid4())


def _create_tables(conn: sqlite3.Connection):
    # executescript commits any pending transaction first
    conn.executescript(SCHEMA_SQL)


def _seed_default_data(conn: sqlite3.Connection):
    """Insert default permissions and system roles if missing."""
    now = isonow()
    permission_ids = {}

    for name, description, resource, action in DEFAULT_PERMISSIONS:
        row = conn.execute(
            "SELECT id FROM permissions WHERE resource = ? AND action = ? AND is_active = 1",
            (resource, action),
        ).fetchone()
        if row:
            permission_ids[(resource, action)] = row["id"]
            continue
        perm_id = new_id()
        conn.execute(
            "INSERT INTO permissions (id, name, description, resource, action, is_active, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, 1, ?, ?)",
            (perm_id, name, description, resource, action, now, now),
        )
        permission_ids[(resource, action)] = perm_id

    for role_name, role_def in DEFAULT_ROLES.items():
        if conn.execute("SELECT 1 FROM roles WHERE name = ?", (role_name,)).fetchone():
            continue
        role_id = new_id()
        conn.execute(
            "INSERT INTO roles (id, name, description, is_active, is_system_role, created_at, updated_at) "
            "VALUES (?, ?, ?, 1, ?, ?, ?)",
            (role_id, role_name, role_def["description"], int(role_def["is_system_role"]), now, now),
        )
        for pair in role_def["permissions"]:
            conn.execute(
                "INSERT INTO role_permissions (role_id, permission_id) VALUES (?, ?)",
                (role_id, permission_ids[pair]),
            )
        logger.info(f"Seeded role {role_name}")


def _seed_admin(conn: sqlite3.Connection, auth: AuthSettings):
    """Create the bootstrap administrator when configured and absent."""
    email = auth.admin_email.strip().lower()
    password = auth.admin_password.get_secret_value()
    if not email or not password:
        return
    if conn.execute("SELECT 1 FROM users WHERE email = ?", (email,)).fetchone():
        return

    role = conn.execute("SELECT id FROM roles WHERE name = ?", (SUPER_ADMIN_ROLE,)).fetchone()
    now = isonow()
    user_id = new_id()
    conn.execute(
        "INSERT INTO users (id, email, password_hash, first_name, last_name, is_active, "
        "email_verified_at, created_at, updated_at) VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?)",
        (user_id, email, hash_password(password), "System", "Administrator", now, now, now),
    )
    if role:
        conn.execute("INSERT INTO user_roles (user_id, role_id) VALUES (?, ?)", (user_id, role["id"]))
    logger.info("Seeded bootstrap administrator account")


def initialize(db: DatabaseManager, auth: AuthSettings):
    """Create tables and seed default data. Safe to call on every start."""
    with db.connect() as conn:
        _create_tables(conn)
    with db.transaction() as conn:
        _seed_default_data(conn)
        _seed_admin(conn, auth)
    logger.info(f"Auth database initialized at {db.path}")
