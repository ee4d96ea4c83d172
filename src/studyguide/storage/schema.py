"""SQLite schema and pragmas for the object store."""

from __future__ import annotations

import sqlite3


PRAGMA_BUSY_TIMEOUT_MS = 5000


def apply_runtime_pragmas(connection: sqlite3.Connection) -> None:
    """Apply pragmas that keep concurrent re-invocations from blocking each other."""

    connection.execute("PRAGMA journal_mode=WAL;")
    connection.execute(f"PRAGMA busy_timeout={PRAGMA_BUSY_TIMEOUT_MS};")
    connection.execute("PRAGMA synchronous=NORMAL;")


def ensure_schema(connection: sqlite3.Connection) -> None:
    """Create the objects table if missing."""

    connection.executescript(
        """
        CREATE TABLE IF NOT EXISTS objects (
            key TEXT PRIMARY KEY,
            data BLOB NOT NULL,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX IF NOT EXISTS idx_objects_updated_at ON objects(updated_at);
        """
    )
