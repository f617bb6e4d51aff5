"""Key/value persistence with SQLite."""

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

KEY_VALIDATORS = "validators"
KEY_VALIDATOR_LABELS = "validator_labels"
KEY_PENDING_VALIDATORS = "pending_validators"
KEY_NOTIFIED_DUTIES = "notified_duties"
KEY_DUTIES_CACHE = "duties_cache"
KEY_MISSED_ATTESTATIONS = "missed_attestations"
KEY_NOTIFICATION_SETTINGS = "notification_settings"
KEY_BEACON_URL = "beacon_url"
KEY_BLOCK_DETAILS = "block_details"
KEY_SCHEMA_VERSION = "schema_version"


class Store:
    """SQLite-backed key/value store for tracker state.

    Values are JSON documents. Every write is committed immediately so a
    crash never loses a ledger entry that has already been acted upon.
    Reads are served from an in-memory copy after the first access.
    """

    def __init__(self, data_dir: Optional[str] = None, filename: str = "dutywatch.db"):
        self.data_dir = Path(data_dir) if data_dir else Path(".")
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self._cache: dict[str, Any] = {}

        self._db_path = self.data_dir / filename
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    @property
    def path(self) -> Path:
        return self._db_path

    def _init_db(self) -> None:
        """Initialize SQLite database and tables."""
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at REAL NOT NULL
            );
        """)
        self._conn.commit()
        logger.debug(f"SQLite store initialized at {self._db_path}")

    def get(self, key: str, default: Any = None) -> Any:
        """Return the decoded value for ``key`` or ``default``."""
        if key in self._cache:
            return self._cache[key]

        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        try:
            value = json.loads(row[0])
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding corrupt value for {key}: {e}")
            self.delete(key)
            return default
        self._cache[key] = value
        return value

    def set(self, key: str, value: Any) -> None:
        """Encode and persist ``value`` under ``key``."""
        encoded = json.dumps(value)
        self._conn.execute(
            "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
            (key, encoded, time.time()),
        )
        self._conn.commit()
        self._cache[key] = json.loads(encoded)

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        self._conn.commit()
        self._cache.pop(key, None)

    def has(self, key: str) -> bool:
        if key in self._cache:
            return True
        row = self._conn.execute("SELECT 1 FROM kv WHERE key = ?", (key,)).fetchone()
        return row is not None

    def keys(self) -> list[str]:
        return [row[0] for row in self._conn.execute("SELECT key FROM kv ORDER BY key")]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.debug("SQLite store closed")
