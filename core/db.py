"""
Database access layer for the credential and permission store.

Provides a SQLite connection pool. Every logical operation
acquires one connection, runs inside a single transaction, and hands the
connection back.

Usage:
    db = DatabaseManager(db_path=Path("data/hms.db"))
    with db.connect() as conn:          # reads, single-statement writes
        conn.execute("SELECT ...")
    with db.transaction() as conn:      # multi-step writes
        conn.execute("INSERT ...")
        conn.execute("INSERT ...")
"""

import logging
import queue
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "hms.db"

# Seconds a writer waits on a locked database before failing.
BUSY_TIMEOUT = 10.0


def row_to_dict(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    """Convert a sqlite3.Row into a plain dict (None passes through)."""
    if row is None:
        return None
    return {key: row[key] for key in row.keys()}


def rows_to_dicts(rows: Iterable[sqlite3.Row]) -> List[Dict[str, Any]]:
    return [row_to_dict(r) for r in rows]


def is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    """True when an IntegrityError was raised by a UNIQUE constraint or index."""
    return "UNIQUE constraint failed" in str(exc)


def fetch_page(
    conn: sqlite3.Connection,
    select_sql: str,
    where: List[str],
    params: List[Any],
    order_by: str,
    page: int,
    limit: int,
) -> tuple[List[Dict[str, Any]], int]:
    """Run a filtered, ordered, paginated SELECT and its COUNT.

    `where` fragments and `order_by` must be built from whitelisted column
    names; user input only ever travels through `params`.
    """
    where_sql = f" WHERE {' AND '.join(where)}" if where else ""
    total = conn.execute(
        f"SELECT COUNT(*) FROM ({select_sql}{where_sql})", params  # nosec B608
    ).fetchone()[0]
    rows = conn.execute(
        f"{select_sql}{where_sql} ORDER BY {order_by} LIMIT ? OFFSET ?",  # nosec B608
        [*params, limit, (page - 1) * limit],
    ).fetchall()
    return rows_to_dicts(rows), total


class DatabaseManager:
    """
    Connection pool for the SQLite database.

    The app factory builds one per app and injects it into every store
    and service.
    """

    def __init__(self, db_path: Optional[Path] = None, pool_size: int = 10):
        self._db_path = Path(db_path) if db_path else _DEFAULT_DB_PATH
        self._pool_size = pool_size

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._pool: queue.Queue = queue.Queue(maxsize=pool_size)

    @property
    def path(self) -> Path:
        return self._db_path

    def close_all(self):
        """Close every pooled connection."""
        while True:
            try:
                conn = self._pool.get_nowait()
            except queue.Empty:
                break
            conn.close()

    # ----- connection acquisition / release -----------------------------------

    def _new_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self._db_path), timeout=BUSY_TIMEOUT, check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def get_connection(self) -> sqlite3.Connection:
        """Acquire a connection from the pool, opening a new one if it is empty."""
        try:
            conn = self._pool.get_nowait()
        except queue.Empty:
            return self._new_connection()

        try:
            conn.execute("SELECT 1")
        except sqlite3.Error:
            logger.debug("Discarding stale pooled connection")
            conn.close()
            return self._new_connection()
        return conn

    def release_connection(self, conn: sqlite3.Connection):
        """Return a connection to the pool, closing it if the pool is full."""
        if conn.in_transaction:
            conn.rollback()
        try:
            self._pool.put_nowait(conn)
        except queue.Full:
            conn.close()

    @contextmanager
    def connect(self):
        """Context manager: acquire -> yield -> commit/rollback -> release."""
        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.release_connection(conn)

    @contextmanager
    def transaction(self):
        """Like connect(), but takes the write lock up front (BEGIN IMMEDIATE).

        Use for multi-step writes so concurrent writers serialize instead of
        failing on a stale read snapshot.
        """
        conn = self.get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.release_connection(conn)

    def ping(self) -> bool:
        """Check the database answers a trivial query."""
        try:
            with self.connect() as conn:
                conn.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error as e:
            logger.warning(f"Database health check failed: {e}")
            return False
