"""SQLite database management for the Medly symptom log store.

Handles connection lifecycle, schema creation, and migrations.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

# Current schema version
SCHEMA_VERSION = 3

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- One row per symptom entry; notes are encrypted at rest
CREATE TABLE IF NOT EXISTS logs (
    id              TEXT PRIMARY KEY,
    created_at      TEXT NOT NULL,
    symptom_type    TEXT NOT NULL,
    severity        INTEGER NOT NULL,
    cycle_phase     TEXT,
    notes_enc       TEXT,
    tags_json       TEXT NOT NULL DEFAULT '[]',
    triggers_json   TEXT NOT NULL DEFAULT '[]',
    meds_json       TEXT NOT NULL DEFAULT '[]',
    duration_mins   INTEGER,
    schema_version  INTEGER NOT NULL DEFAULT 2
);

-- Bundled reference passages, upserted by id when the pack is seeded
CREATE TABLE IF NOT EXISTS kb_documents (
    id              TEXT PRIMARY KEY,
    title           TEXT NOT NULL,
    source          TEXT NOT NULL,
    url             TEXT NOT NULL,
    tags_json       TEXT NOT NULL DEFAULT '[]',
    text            TEXT NOT NULL,
    schema_version  INTEGER NOT NULL DEFAULT 1,
    updated_at      TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_logs_created ON logs(created_at);
CREATE INDEX IF NOT EXISTS idx_logs_symptom ON logs(symptom_type);
"""

# ---------------------------------------------------------------------------
# V2: Audit log table (access logging + LLM disclosure)
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    tool_name       TEXT,
    tool_input_hash TEXT,
    privacy_mode    TEXT,
    llm_provider    TEXT,
    llm_disclosed   INTEGER DEFAULT 0,
    thread_id       TEXT,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_tool      ON audit_log(tool_name);
"""

# ---------------------------------------------------------------------------
# V3: Chat history and per-thread session state
# ---------------------------------------------------------------------------

_SCHEMA_V3 = """
CREATE TABLE IF NOT EXISTS chat_messages (
    id              TEXT PRIMARY KEY,
    thread_id       TEXT NOT NULL,
    role            TEXT NOT NULL,
    content         TEXT NOT NULL,
    intent          TEXT,
    citations_json  TEXT NOT NULL DEFAULT '[]',
    created_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS session_state (
    thread_id       TEXT PRIMARY KEY,
    state_json      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_chat_thread ON chat_messages(thread_id, created_at);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class HealthDatabase:
    """SQLite database manager for the symptom log store.

    Supports both file-based and in-memory (`:memory:`) databases.
    In-memory mode is used for testing.

    Usage::

        db = HealthDatabase(":memory:")
        db.initialize()
        conn = db.connection
        # ... use connection ...
        db.close()
    """

    def __init__(self, db_path: str = ":memory:") -> None:
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

        Idempotent: safe to call multiple times.
        """
        if self._conn is not None:
            return

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file), check_same_thread=False)
        else:
            self._conn = sqlite3.connect(":memory:", check_same_thread=False)

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._ensure_schema()
        logger.info("Health database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist and apply migrations."""
        conn = self.connection

        conn.executescript(_SCHEMA_V1)

        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        current_version = row[0] if row[0] is not None else 0

        if current_version > SCHEMA_VERSION:
            raise DatabaseError(
                f"Database schema version {current_version} is newer than supported "
                f"version {SCHEMA_VERSION}"
            )

        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: audit_log table")

        if current_version < 3:
            conn.executescript(_SCHEMA_V3)
            logger.info("Applied schema migration V3: chat_messages, session_state")

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
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row[0] is not None else 0

    def table_names(self) -> set[str]:
        rows = self.connection.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table'"
        ).fetchall()
        return {row[0] for row in rows}

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Health database closed")

    def __enter__(self) -> HealthDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
