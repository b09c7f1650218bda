"""Audit logger: PHI-free access logging and LLM disclosure tracking.

Records every tool invocation, generation request, and deletion event:

* ``tool_input_hash`` is a SHA-256 of canonical JSON (no raw notes in logs).
* ``llm_disclosed`` tracks whether (redacted) health data left the device.
* ``privacy_mode`` records which per-log detail filter was active.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from medly.core.storage.database import HealthDatabase

logger = logging.getLogger(__name__)


def _hash_input(data: Any) -> str:
    """SHA-256 hash of canonical JSON, or empty string if not serializable."""
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(canonical.encode()).hexdigest()
    except (TypeError, ValueError):
        return ""


@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str                          # 'tool_invocation' | 'generation' | 'data_delete'
    tool_name: str = ""
    tool_input_hash: str = ""
    privacy_mode: str | None = None      # 'strict' | 'standard' | 'explicit'
    llm_provider: str | None = None      # 'anthropic' | 'openai' | 'mock'
    llm_disclosed: bool = False
    thread_id: str | None = None
    duration_ms: float | None = None
    status: str = "success"              # 'success' | 'error'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class AuditLogger:
    """Records audit events to the ``audit_log`` SQLite table.

    All writes are committed immediately so no audit entry is lost on crash.
    A failed audit write is logged and reported as an empty id; it never
    breaks the tool call being audited.
    """

    def __init__(self, database: HealthDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Write one audit row.

        A failed write is logged and swallowed so that auditing never breaks
        the tool call or chat turn it describes.

        Args:
            event: The event to record. ``metadata`` is stored as compact JSON.

        Returns:
            The new event id, or ``""`` when the row could not be written.
        """
        event_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()
        metadata_json = (
            json.dumps(event.metadata, separators=(",", ":"), default=str)
            if event.metadata
            else None
        )

        try:
            conn = self._db.connection
            conn.execute(
                """INSERT INTO audit_log
                   (id, timestamp, action, tool_name, tool_input_hash,
                    privacy_mode, llm_provider, llm_disclosed, thread_id,
                    duration_ms, status, error_type, metadata_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event_id,
                    now,
                    event.action,
                    event.tool_name or None,
                    event.tool_input_hash or None,
                    event.privacy_mode,
                    event.llm_provider,
                    1 if event.llm_disclosed else 0,
                    event.thread_id,
                    event.duration_ms,
                    event.status,
                    event.error_type,
                    metadata_json,
                ),
            )
            conn.commit()
        except Exception:
            logger.exception("Failed to write audit event, event lost")
            return ""

        return event_id

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        privacy_mode: str | None = None,
        llm_provider: str | None = None,
        llm_disclosed: bool = False,
        thread_id: str | None = None,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record one MCP tool call.

        Args:
            tool_name: Registered tool name, e.g. ``log_symptom``.
            tool_input: Arguments of the call. Only their SHA-256 digest is
                kept, so notes and messages never reach the audit table.
            privacy_mode: Privacy mode the call ran under, if any.
            duration_ms: Wall time spent in the tool.
            status: ``"success"`` or ``"error"``.
            metadata: Small non-identifying extras such as result counts.

        Returns:
            The event id (``""`` if the write failed).
        """
        return self.log_event(AuditEvent(
            action="tool_invocation",
            tool_name=tool_name,
            tool_input_hash=_hash_input(tool_input) if tool_input else "",
            privacy_mode=privacy_mode,
            llm_provider=llm_provider,
            llm_disclosed=llm_disclosed,
            thread_id=thread_id,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_generation(
        self,
        *,
        thread_id: str,
        prompt_input: Any,
        privacy_mode: str,
        llm_provider: str,
        duration_ms: float,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record one generation request for a chat thread.

        Args:
            thread_id: Conversation the turn belongs to.
            prompt_input: The assembled prompt; hashed, never stored.
            privacy_mode: Mode that decided which log data the prompt carried.
            llm_provider: Backend name. Anything other than ``mock`` counts as
                a disclosure of de-identified data.
            duration_ms: Time spent generating, including retries.
            status: ``"success"`` or ``"error"``.
            error_type: Exception class name when generation failed.

        Returns:
            The event id (``""`` if the write failed).
        """
        return self.log_event(AuditEvent(
            action="generation",
            tool_name="health_chat",
            tool_input_hash=_hash_input(prompt_input),
            privacy_mode=privacy_mode,
            llm_provider=llm_provider,
            llm_disclosed=llm_provider != "mock",
            thread_id=thread_id,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_data_delete(
        self,
        *,
        tool_name: str = "",
        count: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record a user-initiated deletion of stored logs.

        Args:
            tool_name: Tool that performed the deletion.
            count: Number of records removed; stored as ``records_deleted``.
            metadata: Extra context such as the deleted log id.
        """
        return self.log_event(AuditEvent(
            action="data_delete",
            tool_name=tool_name,
            metadata={**(metadata or {}), "records_deleted": count},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        tool_name: str | None = None,
        thread_id: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events, newest first.

        Args:
            action: Only events of this action (``tool_invocation``,
                ``generation`` or ``data_delete``).
            tool_name: Only events for this tool.
            thread_id: Only events for this chat thread.
            since: ISO 8601 lower bound on the event timestamp.
            limit: Maximum rows to return.

        Returns:
            Raw audit rows as dicts.
        """
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if tool_name:
            conditions.append("tool_name = ?")
            params.append(tool_name)
        if thread_id:
            conditions.append("thread_id = ?")
            params.append(thread_id)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def count_events(self, *, since: str | None = None) -> int:
        if since:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE timestamp >= ?", (since,)
            ).fetchone()
        else:
            row = self._db.connection.execute("SELECT COUNT(*) FROM audit_log").fetchone()
        return row[0]

    def count_disclosures(self, *, since: str | None = None) -> int:
        """How many times has (redacted) health data left this device?"""
        if since:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE llm_disclosed = 1 AND timestamp >= ?",
                (since,),
            ).fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE llm_disclosed = 1"
            ).fetchone()
        return row[0]

    def count_by_action(self, *, since: str | None = None) -> dict[str, int]:
        """Event counts keyed by action, e.g. ``{"generation": 3}``."""
        query = "SELECT action, COUNT(*) AS n FROM audit_log"
        params: list[Any] = []
        if since:
            query += " WHERE timestamp >= ?"
            params.append(since)
        query += " GROUP BY action ORDER BY action"
        rows = self._db.connection.execute(query, params).fetchall()
        return {row["action"]: row["n"] for row in rows}
