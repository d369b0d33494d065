"""
SQLite State Store for Cadence.

Provides portable JSON key-value persistence for:
- Practice journal and daily rollups
- Per-skill difficulty records
- The crash-recovery snapshot slot

Database location: ~/.cadence/state.db
"""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any

from loguru import logger


class StoreError(Exception):
    """Raised internally when the backing database cannot be used."""


# =============================================================================
# In-Memory Store
# =============================================================================


class MemoryStore:
    """
    Non-durable store. Used directly in tests and as the fallback when the
    SQLite file cannot be opened.

    Values are kept JSON-encoded so callers never share mutable state with
    the store, matching the SQLite store's semantics.
    """

    durable = False

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Malformed value under '{key}', treating as absent")
            return default

    def set(self, key: str, value: Any) -> bool:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.warning(f"Could not encode value for '{key}': {exc}")
            return False
        return True

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return sorted(self._data)

    def put_raw(self, key: str, raw: str) -> None:
        """Store an undecoded string (used to simulate corrupt data)."""
        self._data[key] = raw


# =============================================================================
# SQLite Store
# =============================================================================


class StateStore:
    """
    SQLite-backed key-value persistence.

    Every value is a JSON document in a single ``kv`` table. Reads of missing
    or malformed rows return the caller's default; writes that fail are
    logged and reported as False, never raised.
    """

    DEFAULT_DB_PATH = Path.home() / ".cadence" / "state.db"
    durable = True

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize the state store.

        Args:
            db_path: Custom database path (defaults to ~/.cadence/state.db)

        Raises:
            StoreError: If the database cannot be created or opened
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        except (OSError, sqlite3.Error) as exc:
            raise StoreError(f"Cannot open state store at {self.db_path}: {exc}") from exc

        logger.info(f"StateStore initialized at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            # The engagement clock ticks on its own thread.
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at REAL NOT NULL
            )
        """)
        self.conn.commit()

    # =========================================================================
    # Key-Value Operations
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a JSON value.

        Args:
            key: Storage key
            default: Returned when the key is absent, unreadable or malformed

        Returns:
            Decoded value or default
        """
        try:
            with self._lock:
                row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            logger.warning(f"Read of '{key}' failed: {exc}")
            return default

        if row is None:
            return default

        try:
            return json.loads(row["value"])
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Malformed value under '{key}', treating as absent")
            return default

    def set(self, key: str, value: Any) -> bool:
        """
        Store a JSON value.

        Returns:
            True on success, False if encoding or the write failed
        """
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.warning(f"Could not encode value for '{key}': {exc}")
            return False

        try:
            with self._lock:
                self.conn.execute(
                    "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, encoded, time.time()),
                )
                self.conn.commit()
        except sqlite3.Error as exc:
            logger.warning(f"Write of '{key}' failed: {exc}")
            return False
        return True

    def delete(self, key: str) -> bool:
        try:
            with self._lock:
                cursor = self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                self.conn.commit()
        except sqlite3.Error as exc:
            logger.warning(f"Delete of '{key}' failed: {exc}")
            return False
        return cursor.rowcount > 0

    def keys(self) -> list[str]:
        try:
            with self._lock:
                rows = self.conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
        except sqlite3.Error as exc:
            logger.warning(f"Key listing failed: {exc}")
            return []
        return [row["key"] for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None


def open_store(db_path: Path | str | None = None) -> StateStore | MemoryStore:
    """
    Open the SQLite store, degrading to a non-durable in-memory store when
    the database is unavailable.
    """
    try:
        return StateStore(db_path)
    except StoreError as exc:
        logger.warning(f"{exc}; falling back to in-memory storage")
        return MemoryStore()
