"""Repositories: CRUD between dataclass records and the SQLite store.

``LogRepository`` encrypts notes with ``FieldEncryptor``; every other field
is stored in the clear so window queries can use the indexes. The core
analytics never write logs: only the logging tools do.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable

from medly.core.storage.database import HealthDatabase
from medly.core.storage.encryption import EncryptionError, FieldEncryptor
from medly.core.storage.models import (
    ChatMessage,
    KBDocument,
    Log,
    SchemaVersionError,
    SessionState,
)

logger = logging.getLogger(__name__)

KB_REQUIRED_FIELDS = ("id", "title", "source", "url", "text")


class RepositoryError(Exception):
    """Raised when repository operations fail."""


def _new_id() -> str:
    return str(uuid.uuid4())


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


def _utc_iso(moment: datetime) -> str:
    """Fixed-width UTC ISO text, so string order in SQL is chronological."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------

class LogRepository:
    """Symptom log store with encrypted notes.

    Usage::

        repo = LogRepository(db, FieldEncryptor(key))
        log_id = repo.save(log)
        recent = repo.list(since=datetime(2025, 1, 1), limit=500)
    """

    def __init__(self, database: HealthDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    def save(self, log: Log) -> str:
        """Insert or replace a log, encrypting its note.

        Args:
            log: The record to store. A blank ``id`` gets a new UUID.
                ``created_at`` is stored as UTC text, whatever its offset.

        Returns:
            The id the log was stored under.
        """
        log_id = log.id or _new_id()
        conn = self._db.connection
        conn.execute(
            """INSERT OR REPLACE INTO logs (
                id, created_at, symptom_type, severity, cycle_phase, notes_enc,
                tags_json, triggers_json, meds_json, duration_mins, schema_version
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                log_id,
                _utc_iso(log.created_at),
                log.symptom_type,
                int(log.severity),
                log.cycle_phase,
                self._enc.encrypt(log.notes) if log.notes else None,
                _dumps(list(log.tags)),
                _dumps(list(log.triggers)),
                _dumps(list(log.meds)),
                log.duration_mins,
                log.schema_version,
            ),
        )
        conn.commit()
        logger.info("Saved log %s (symptom=%s)", log_id, log.symptom_type)
        return log_id

    def import_records(self, records: Iterable[dict[str, Any]]) -> int:
        """Import exported record dicts of any supported schema version.

        Args:
            records: Raw records. v1 records are upgraded by
                ``migrate_log_record``; unreadable ones are skipped and logged
                by id only.

        Returns:
            Number of logs written.
        """
        imported = 0
        for record in records:
            try:
                log = Log.from_dict(record)
            except (SchemaVersionError, AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "Skipping unimportable log %s: %s",
                    record.get("id") if isinstance(record, dict) else None,
                    type(exc).__name__,
                )
                continue
            self.save(log)
            imported += 1
        return imported

    def get(self, log_id: str) -> Log | None:
        row = self._db.connection.execute(
            "SELECT * FROM logs WHERE id = ?", (log_id,)
        ).fetchone()
        return self._row_to_log(row) if row is not None else None

    def get_by_ids(self, log_ids: list[str]) -> list[Log]:
        """Fetch logs by id, newest first.

        Args:
            log_ids: Ids to look up. Unknown ids are ignored.

        Returns:
            The matching logs with notes decrypted.

        Raises:
            RepositoryError: A stored note cannot be decrypted with this key.
        """
        if not log_ids:
            return []
        placeholders = ",".join("?" for _ in log_ids)
        rows = self._db.connection.execute(
            f"SELECT * FROM logs WHERE id IN ({placeholders}) ORDER BY created_at DESC",
            list(log_ids),
        ).fetchall()
        return [self._row_to_log(row) for row in rows]

    def list(
        self,
        *,
        since: datetime | None = None,
        symptom_type: str | None = None,
        limit: int | None = None,
    ) -> list[Log]:
        """Query logs, newest first.

        Args:
            since: Inclusive lower bound on ``created_at``.
            symptom_type: Exact symptom-type filter.
            limit: Maximum rows to return (None for all).
        """
        conditions: list[str] = []
        params: list[Any] = []

        if since is not None:
            conditions.append("created_at >= ?")
            params.append(_utc_iso(since))
        if symptom_type:
            conditions.append("symptom_type = ?")
            params.append(symptom_type)

        query = "SELECT * FROM logs"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY created_at DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [self._row_to_log(row) for row in rows]

    def count(self) -> int:
        return self._db.connection.execute("SELECT COUNT(*) FROM logs").fetchone()[0]

    def delete(self, log_id: str) -> bool:
        """Permanently delete one log.

        Args:
            log_id: Id of the log to remove.

        Returns:
            True if a row was deleted, False when no such log exists.
        """
        conn = self._db.connection
        cursor = conn.execute("DELETE FROM logs WHERE id = ?", (log_id,))
        conn.commit()
        if cursor.rowcount:
            logger.info("Deleted log %s", log_id)
        return cursor.rowcount > 0

    def _row_to_log(self, row: Any) -> Log:
        try:
            notes = self._enc.decrypt(row["notes_enc"]) if row["notes_enc"] else None
        except EncryptionError as exc:
            raise RepositoryError(f"Could not decrypt notes for log {row['id']}") from exc
        return Log(
            id=row["id"],
            symptom_type=row["symptom_type"],
            severity=row["severity"],
            created_at=datetime.fromisoformat(row["created_at"]),
            cycle_phase=row["cycle_phase"],
            notes=notes,
            tags=json.loads(row["tags_json"] or "[]"),
            triggers=json.loads(row["triggers_json"] or "[]"),
            meds=json.loads(row["meds_json"] or "[]"),
            duration_mins=row["duration_mins"],
            schema_version=row["schema_version"],
        )


# ---------------------------------------------------------------------------
# Knowledge base
# ---------------------------------------------------------------------------

def validate_kb_record(record: Any) -> list[str]:
    """Return a list of problems with a raw knowledge-pack record."""
    if not isinstance(record, dict):
        return ["record is not an object"]
    problems = [
        f"missing or empty field: {name}"
        for name in KB_REQUIRED_FIELDS
        if not isinstance(record.get(name), str) or not record.get(name).strip()
    ]
    tags = record.get("tags")
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        problems.append("tags must be a list of strings")
    return problems


class KnowledgeBaseRepository:
    """Reference-passage store. Seeding upserts by id and never duplicates."""

    def __init__(self, database: HealthDatabase) -> None:
        self._db = database

    def seed(self, records: Iterable[dict[str, Any]]) -> int:
        """Upsert valid records by id; invalid records are skipped.

        Returns:
            Number of documents written.
        """
        conn = self._db.connection
        written = 0
        for record in records:
            problems = validate_kb_record(record)
            if problems:
                logger.warning(
                    "Skipping invalid knowledge document %r: %s",
                    record.get("id") if isinstance(record, dict) else None,
                    "; ".join(problems),
                )
                continue
            try:
                doc = KBDocument.from_dict(record)
            except SchemaVersionError as exc:
                logger.warning("Skipping knowledge document %r: %s", record.get("id"), exc)
                continue
            conn.execute(
                """INSERT INTO kb_documents (id, title, source, url, tags_json, text, schema_version, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       title = excluded.title,
                       source = excluded.source,
                       url = excluded.url,
                       tags_json = excluded.tags_json,
                       text = excluded.text,
                       schema_version = excluded.schema_version,
                       updated_at = excluded.updated_at""",
                (
                    doc.id,
                    doc.title,
                    doc.source,
                    doc.url,
                    _dumps(doc.tags),
                    doc.text,
                    doc.schema_version,
                    _now_iso(),
                ),
            )
            written += 1
        conn.commit()
        logger.info("Seeded %d knowledge documents", written)
        return written

    def get_all(self) -> list[KBDocument]:
        rows = self._db.connection.execute(
            "SELECT * FROM kb_documents ORDER BY id"
        ).fetchall()
        return [self._row_to_doc(row) for row in rows]

    def get(self, doc_id: str) -> KBDocument | None:
        row = self._db.connection.execute(
            "SELECT * FROM kb_documents WHERE id = ?", (doc_id,)
        ).fetchone()
        return self._row_to_doc(row) if row is not None else None

    def get_many(self, doc_ids: list[str]) -> list[KBDocument]:
        """Resolve ids to documents, preserving the order of ``doc_ids``."""
        docs = []
        for doc_id in doc_ids:
            doc = self.get(doc_id)
            if doc is not None:
                docs.append(doc)
        return docs

    def count(self) -> int:
        return self._db.connection.execute("SELECT COUNT(*) FROM kb_documents").fetchone()[0]

    @staticmethod
    def _row_to_doc(row: Any) -> KBDocument:
        return KBDocument(
            id=row["id"],
            title=row["title"],
            source=row["source"],
            url=row["url"],
            text=row["text"],
            tags=json.loads(row["tags_json"] or "[]"),
            schema_version=row["schema_version"],
        )


# ---------------------------------------------------------------------------
# Chat history
# ---------------------------------------------------------------------------

class ChatRepository:
    """Persisted chat turns. Callers must hand in already-redacted content."""

    def __init__(self, database: HealthDatabase) -> None:
        self._db = database

    def save_message(self, message: ChatMessage) -> str:
        """Append one chat turn to its thread.

        Args:
            message: A redacted turn. ``created_at`` defaults to now and
                ``citations`` is stored as a JSON list of KB ids.

        Returns:
            The message id.
        """
        msg_id = message.id or _new_id()
        conn = self._db.connection
        conn.execute(
            """INSERT INTO chat_messages (id, thread_id, role, content, intent, citations_json, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                msg_id,
                message.thread_id,
                message.role,
                message.content,
                message.intent,
                _dumps(list(message.citations)),
                message.created_at or _now_iso(),
            ),
        )
        conn.commit()
        return msg_id

    def get_history(self, thread_id: str, *, limit: int = 20) -> list[ChatMessage]:
        """Return the last ``limit`` messages of a thread, oldest first."""
        rows = self._db.connection.execute(
            """SELECT * FROM chat_messages WHERE thread_id = ?
               ORDER BY created_at DESC, rowid DESC LIMIT ?""",
            (thread_id, limit),
        ).fetchall()
        return [
            ChatMessage(
                id=row["id"],
                thread_id=row["thread_id"],
                role=row["role"],
                content=row["content"],
                created_at=row["created_at"],
                intent=row["intent"],
                citations=json.loads(row["citations_json"] or "[]"),
            )
            for row in reversed(rows)
        ]


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------

class SessionStateRepository:
    """Explicit load/save for per-thread ``SessionState``."""

    def __init__(self, database: HealthDatabase) -> None:
        self._db = database

    def load(self, thread_id: str) -> SessionState:
        """Load the state for a thread, or a fresh state if none is stored."""
        row = self._db.connection.execute(
            "SELECT state_json FROM session_state WHERE thread_id = ?", (thread_id,)
        ).fetchone()
        if row is None:
            return SessionState(thread_id=thread_id)
        try:
            return SessionState.from_dict(json.loads(row["state_json"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise RepositoryError(f"Corrupt session state for thread {thread_id}") from exc

    def save(self, state: SessionState) -> None:
        """Upsert the state of ``state.thread_id``, replacing any earlier version."""
        conn = self._db.connection
        conn.execute(
            """INSERT INTO session_state (thread_id, state_json, updated_at)
               VALUES (?, ?, ?)
               ON CONFLICT(thread_id) DO UPDATE SET
                   state_json = excluded.state_json,
                   updated_at = excluded.updated_at""",
            (state.thread_id, _dumps(state.to_dict()), _now_iso()),
        )
        conn.commit()
