"""SQLite database management for the bandwidth document store.

Handles connection lifecycle, schema creation, and migrations.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

# Current schema version
SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- One row per users/{user_id}/{collection}/{day} document
CREATE TABLE IF NOT EXISTS metric_documents (
    user_id     TEXT NOT NULL,
    collection  TEXT NOT NULL,
    day         TEXT NOT NULL,

    -- healthData documents are encrypted; computedData stays plain JSON
    fields_enc  TEXT,
    fields_json TEXT,

    updated_at  TEXT NOT NULL,
    PRIMARY KEY (user_id, collection, day)
);

CREATE TABLE IF NOT EXISTS users (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL DEFAULT '',
    paired_with  TEXT,
    device_token TEXT,
    time_zone    TEXT,
    created_at   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Alerts live in the recipient's (partner's) collection
CREATE TABLE IF NOT EXISTS alerts (
    id             TEXT PRIMARY KEY,
    recipient_id   TEXT NOT NULL,
    type           TEXT NOT NULL,
    from_user_id   TEXT NOT NULL,
    from_user_name TEXT NOT NULL,
    score          REAL NOT NULL,
    percentile     REAL NOT NULL,
    timestamp      TEXT NOT NULL,
    status         TEXT NOT NULL DEFAULT 'unread'
);

CREATE TABLE IF NOT EXISTS daily_tasks (
    id           TEXT PRIMARY KEY,
    user_id      TEXT NOT NULL,
    timestamp    TEXT NOT NULL,
    status       TEXT NOT NULL DEFAULT 'pending',
    score        REAL,
    error        TEXT,
    processed_at TEXT,
    created_at   TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS user_settings (
    user_id       TEXT PRIMARY KEY,
    settings_json TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Indexes for common query patterns
CREATE INDEX IF NOT EXISTS idx_documents_user_coll ON metric_documents(user_id, collection);
CREATE INDEX IF NOT EXISTS idx_alerts_recipient    ON alerts(recipient_id, status);
CREATE INDEX IF NOT EXISTS idx_tasks_user_status   ON daily_tasks(user_id, status);
CREATE INDEX IF NOT EXISTS idx_tasks_timestamp     ON daily_tasks(timestamp);
"""

# ---------------------------------------------------------------------------
# V2: Audit log table (score computations, task outcomes, partner disclosures)
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id                TEXT PRIMARY KEY,
    timestamp         TEXT NOT NULL DEFAULT (datetime('now')),
    action            TEXT NOT NULL,
    user_id           TEXT,
    subject_id        TEXT,
    partner_disclosed INTEGER DEFAULT 0,
    duration_ms       REAL,
    status            TEXT NOT NULL DEFAULT 'success',
    error_type        TEXT,
    metadata_json     TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_user      ON audit_log(user_id);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class BandwidthDatabase:
    """SQLite database manager for the bandwidth document store.

    Supports both file-based and in-memory (`:memory:`) databases.
    In-memory mode is used for testing.

    Usage::

        db = BandwidthDatabase(":memory:")
        db.initialize()
        conn = db.connection
        # ... use connection ...
        db.close()
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        """Initialize database manager.

        Args:
            db_path: Path to SQLite file, or ":memory:" for in-memory DB.
        """
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Create the database connection and ensure schema exists.

        For file-based databases, creates parent directories if needed.
        Idempotent: safe to call multiple times.
        """
        if self._conn is not None:
            return

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file))
        else:
            self._conn = sqlite3.connect(":memory:")

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._ensure_schema()
        logger.info("Bandwidth database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist and apply migrations."""
        conn = self.connection

        # V1: Core tables (CREATE IF NOT EXISTS is idempotent)
        conn.executescript(_SCHEMA_V1)

        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        current_version = row[0] if row[0] is not None else 0

        # V2: Audit log table
        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: audit_log table")

        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        """Return the current schema version."""
        cursor = self.connection.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Bandwidth database closed")

    def __enter__(self) -> BandwidthDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
