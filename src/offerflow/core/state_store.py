"""SQLite-backed property store and TTL cache store."""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path

from .config_loader import get_state_db_path, resolve_repo_path


def _iso_now() -> str:
    return datetime.now(tz=UTC).replace(microsecond=0).isoformat()


class _SqliteStateStore:
    def __init__(self, db_path: str | Path | None = None) -> None:
        if db_path is None:
            self._db_path = get_state_db_path()
        else:
            self._db_path = resolve_repo_path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self.ensure_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS properties (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at REAL NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_cache_entries_expires_at
                ON cache_entries(expires_at);
                """
            )


class PropertyStore(_SqliteStateStore):
    """Persistent string key/value store for secrets and runtime options."""

    def get(self, key: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM properties WHERE key = ?", (key,)).fetchone()
        return str(row["value"]) if row is not None else None

    def set_all(self, values: Mapping[str, str]) -> None:
        """Upsert every given key. Keys not mentioned are left untouched."""
        now = _iso_now()
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO properties(key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                [(str(key), str(value), now) for key, value in values.items()],
            )

    def keys(self) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT key FROM properties ORDER BY key").fetchall()
        return [str(row["key"]) for row in rows]


class CacheStore(_SqliteStateStore):
    """String cache with per-entry TTL. Expired entries read as a miss."""

    def __init__(self, db_path: str | Path | None = None, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        super().__init__(db_path)

    def get(self, key: str) -> str | None:
        now = self._clock()
        with self._connect() as conn:
            row = conn.execute("SELECT value, expires_at FROM cache_entries WHERE key = ?", (key,)).fetchone()
            if row is None:
                return None
            if float(row["expires_at"]) <= now:
                conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
                return None
        return str(row["value"])

    def put(self, key: str, value: str, ttl_sec: int) -> None:
        expires_at = self._clock() + max(0, int(ttl_sec))
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO cache_entries(key, value, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, expires_at = excluded.expires_at
                """,
                (key, value, expires_at),
            )

    def remove(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))

    def purge_expired(self) -> int:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM cache_entries WHERE expires_at <= ?", (self._clock(),))
        return int(cursor.rowcount or 0)
