"""Object store contract and its SQLite implementation."""

from __future__ import annotations

from pathlib import Path
import sqlite3
from typing import Protocol

from studyguide.storage.schema import apply_runtime_pragmas, ensure_schema


class ObjectStore(Protocol):
    """Minimal blob storage contract consumed by the pipeline."""

    def get(self, key: str) -> bytes | None:
        ...

    def put(self, key: str, data: bytes) -> None:
        ...

    def put_if_absent(self, key: str, data: bytes) -> bool:
        ...


class SQLiteObjectStore:
    """Thin transactional blob store over a single SQLite table."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._connection = sqlite3.connect(str(self._db_path))
        self._connection.row_factory = sqlite3.Row
        apply_runtime_pragmas(self._connection)
        ensure_schema(self._connection)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "SQLiteObjectStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get(self, key: str) -> bytes | None:
        row = self._connection.execute("SELECT data FROM objects WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return bytes(row["data"])

    def put(self, key: str, data: bytes) -> None:
        if not key:
            raise ValueError("key cannot be empty")
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO objects(key, data)
                VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    data=excluded.data,
                    updated_at=CURRENT_TIMESTAMP
                """,
                (key, sqlite3.Binary(data)),
            )

    def put_if_absent(self, key: str, data: bytes) -> bool:
        """Insert ``data`` only when ``key`` is unused; return whether it was written."""

        if not key:
            raise ValueError("key cannot be empty")
        with self._connection:
            cursor = self._connection.execute(
                "INSERT INTO objects(key, data) VALUES(?, ?) ON CONFLICT(key) DO NOTHING",
                (key, sqlite3.Binary(data)),
            )
        return cursor.rowcount == 1

    def list_keys(self, prefix: str = "") -> list[str]:
        rows = self._connection.execute(
            "SELECT key FROM objects WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        ).fetchall()
        return [str(row["key"]) for row in rows]
