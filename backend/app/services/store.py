"""
Relational store boundary.

Parametrised SQL with positional ``?`` arguments plus an atomic batch
execution for multi-statement units. The store guarantees per-statement
execution; cross-statement isolation only exists inside ``batch``.

The concrete backend is SQLite (libSQL-compatible SQL dialect). A single
connection is shared behind a lock so worker threads of the linking pipeline
can use the same handle.
"""
from __future__ import annotations

import logging
import sqlite3
import threading
from typing import Any, NamedTuple, Sequence

from app.core.errors import StoreError

logger = logging.getLogger(__name__)


class Statement(NamedTuple):
    sql: str
    args: Sequence[Any] = ()


SCHEMA: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS users (
        uid TEXT PRIMARY KEY,
        email TEXT,
        is_admin BOOLEAN DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS curriculum_nodes (
        id INTEGER PRIMARY KEY,
        code TEXT NOT NULL UNIQUE,
        title TEXT NOT NULL,
        description TEXT,
        level TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS app_content (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        app_id TEXT NOT NULL,
        data TEXT NOT NULL,
        level INTEGER,
        ai_generated BOOLEAN DEFAULT 0,
        human_verified BOOLEAN DEFAULT 0,
        ai_reviewed_counter INTEGER DEFAULT 0,
        flag_counter INTEGER DEFAULT 0,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS app_content_curriculum (
        app_content_id INTEGER NOT NULL,
        curriculum_node_id INTEGER NOT NULL,
        PRIMARY KEY (app_content_id, curriculum_node_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS app_config (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        app_id TEXT NOT NULL,
        curriculum_node_id INTEGER,
        config TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS feedback (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_uid TEXT,
        app_id TEXT NOT NULL,
        session_id TEXT,
        target_id TEXT,
        content TEXT,
        comment TEXT,
        error_type TEXT,
        resolved BOOLEAN DEFAULT 0,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_curriculum_progress (
        user_uid TEXT NOT NULL,
        curriculum_node_id INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'started',
        mastery_level INTEGER NOT NULL DEFAULT 0,
        last_activity TEXT,
        PRIMARY KEY (user_uid, curriculum_node_id)
    )
    """,
)


class SQLStore:
    """Thread-safe handle on one SQLite database."""

    def __init__(self, database: str, timeout: float = 10.0):
        self.database = database
        try:
            self._conn = sqlite3.connect(
                database,
                timeout=timeout,
                check_same_thread=False,
                isolation_level=None,  # autocommit; batch() opens its own transaction
            )
        except sqlite3.Error as exc:
            raise StoreError(f"cannot open store {database!r}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()

    def execute(self, sql: str, args: Sequence[Any] = ()) -> int:
        """Run one statement and return the number of affected rows."""
        with self._lock:
            try:
                cur = self._conn.execute(sql, tuple(args))
                return cur.rowcount
            except sqlite3.Error as exc:
                raise StoreError(f"statement failed: {exc}") from exc

    def query(self, sql: str, args: Sequence[Any] = ()) -> list[dict]:
        with self._lock:
            try:
                cur = self._conn.execute(sql, tuple(args))
                return [dict(row) for row in cur.fetchall()]
            except sqlite3.Error as exc:
                raise StoreError(f"query failed: {exc}") from exc

    def query_one(self, sql: str, args: Sequence[Any] = ()) -> dict | None:
        rows = self.query(sql, args)
        return rows[0] if rows else None

    def batch(self, statements: Sequence[Statement]) -> list[int]:
        """Run all statements as one atomic unit. Returns per-statement row counts.

        Either every statement is applied or none is.
        """
        if not statements:
            return []
        with self._lock:
            try:
                self._conn.execute("BEGIN")
                counts = [self._conn.execute(s.sql, tuple(s.args)).rowcount for s in statements]
                self._conn.execute("COMMIT")
                return counts
            except sqlite3.Error as exc:
                try:
                    self._conn.execute("ROLLBACK")
                except sqlite3.Error as rollback_exc:
                    logger.error("[store.batch] rollback failed: %s", rollback_exc)
                raise StoreError(f"batch failed: {exc}") from exc

    def ensure_schema(self) -> None:
        """Create the tables this service touches when they do not exist (dev/test)."""
        self.batch([Statement(sql) for sql in SCHEMA])

    def close(self) -> None:
        with self._lock:
            self._conn.close()
