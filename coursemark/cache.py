"""
Local persisted cache using SQLite.

A small key/value table holding structured text: the last full document
seen from the remote service, and each feature's own UI state. Values
that do not parse are treated as absent.
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .errors import ParseError

logger = logging.getLogger(__name__)

# Well-known keys
REMOTE_DOCUMENT_KEY = "remote_document"
PLANNER_STATE_KEY = "planner_state_v1"
ROSTER_KEY = "roster_v1"


def decode_json(raw: str) -> Any:
    """Parse cached text, raising ParseError on invalid JSON."""
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise ParseError(str(e)) from e


def is_empty_value(value: Any) -> bool:
    """None, empty string and empty containers count as empty."""
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict, set)):
        return len(value) == 0
    return False


class LocalCache:
    """
    SQLite-backed key/value cache for structured UI state.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)

        # WAL lets a CLI read while another process writes
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS entries (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    # -------------------------------------------------------------------------
    # Raw access
    # -------------------------------------------------------------------------

    def get_raw(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM entries WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def set_raw(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute("""
                INSERT OR REPLACE INTO entries (key, value, updated_at)
                VALUES (?, ?, ?)
            """, (key, value, self._now()))
            self._conn.commit()

    def delete(self, key: str) -> bool:
        with self._lock:
            cursor = self._conn.execute("DELETE FROM entries WHERE key = ?", (key,))
            self._conn.commit()
        return cursor.rowcount > 0

    def keys(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute("SELECT key FROM entries ORDER BY key").fetchall()
        return [r[0] for r in rows]

    def updated_at(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute(
                "SELECT updated_at FROM entries WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    # -------------------------------------------------------------------------
    # Structured access
    # -------------------------------------------------------------------------

    def get_json(self, key: str) -> Any:
        """Decoded value, or None when missing or unparseable."""
        raw = self.get_raw(key)
        if raw is None:
            return None
        try:
            return decode_json(raw)
        except ParseError as e:
            logger.warning("Ignoring unparseable cache entry %s: %s", key, e)
            return None

    def set_json(self, key: str, value: Any) -> None:
        self.set_raw(key, json.dumps(value, ensure_ascii=False))

    def is_empty(self, key: str) -> bool:
        return is_empty_value(self.get_json(key))

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
