"""Data models for the symptom-log persistence layer.

Every persisted entity carries an explicit ``schema_version``. Record dicts
read back from storage (or imported from an older export) are upgraded
through ``migrate_log_record`` / ``migrate_kb_record`` before they are turned
into dataclasses, so nothing downstream has to duck-type old shapes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

LOG_SCHEMA_VERSION = 2
KB_SCHEMA_VERSION = 1

CYCLE_PHASES = ("menstrual", "follicular", "ovulation", "luteal", "unknown")

SEVERITY_MIN = 0
SEVERITY_MAX = 10


class SchemaVersionError(ValueError):
    """Raised when a stored record has a schema version we cannot migrate."""


@dataclass
class Log:
    """A single symptom log entry as written by the logging UI.

    Aggregation never mutates a Log; derived views are always new objects.
    """

    id: str
    symptom_type: str
    severity: int
    created_at: datetime
    cycle_phase: str | None = None
    notes: str | None = None
    tags: list[str] = field(default_factory=list)
    triggers: list[str] = field(default_factory=list)
    meds: list[str] = field(default_factory=list)
    duration_mins: int | None = None
    schema_version: int = LOG_SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Log:
        """Build a Log from a record dict of any supported schema version."""
        record = migrate_log_record(data)
        created_at = record["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return cls(
            id=str(record["id"]),
            symptom_type=record["symptom_type"],
            severity=int(record["severity"]),
            created_at=created_at,
            cycle_phase=record.get("cycle_phase"),
            notes=record.get("notes"),
            tags=list(record.get("tags") or []),
            triggers=list(record.get("triggers") or []),
            meds=list(record.get("meds") or []),
            duration_mins=record.get("duration_mins"),
            schema_version=LOG_SCHEMA_VERSION,
        )


@dataclass
class KBDocument:
    """A static reference passage from the bundled knowledge pack."""

    id: str
    title: str
    source: str
    url: str
    text: str
    tags: list[str] = field(default_factory=list)
    schema_version: int = KB_SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KBDocument:
        record = migrate_kb_record(data)
        return cls(
            id=str(record["id"]),
            title=record["title"],
            source=record["source"],
            url=record["url"],
            text=record["text"],
            tags=list(record.get("tags") or []),
        )


@dataclass
class ChatMessage:
    """A persisted chat turn. Only the redacted form of user text is stored."""

    id: str
    thread_id: str
    role: str  # 'user' | 'assistant'
    content: str
    created_at: str = ""  # ISO 8601
    intent: str | None = None
    citations: list[str] = field(default_factory=list)


@dataclass
class SessionState:
    """Per-thread conversational state owned by a ChatSession.

    Loaded and saved explicitly through ``SessionStateRepository``; nothing
    about a conversation lives in module-level globals.
    """

    thread_id: str
    visit_count: int = 0
    last_intent: str | None = None
    last_window_days: int | None = None
    last_emergency: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionState:
        return cls(
            thread_id=str(data["thread_id"]),
            visit_count=int(data.get("visit_count", 0)),
            last_intent=data.get("last_intent"),
            last_window_days=data.get("last_window_days"),
            last_emergency=bool(data.get("last_emergency", False)),
        )


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------

def migrate_log_record(data: dict[str, Any]) -> dict[str, Any]:
    """Upgrade a raw log record dict to the current schema version.

    v1 records came from the original symptom logger and used
    ``name`` / ``intensity`` / ``timestamp`` (epoch millis) keys.
    """
    record = dict(data)
    version = record.get("schema_version", 1 if "intensity" in record else LOG_SCHEMA_VERSION)

    if version == 1:
        ts = record.pop("timestamp", None)
        if "created_at" not in record and ts is not None:
            if isinstance(ts, (int, float)):
                ts = datetime.fromtimestamp(ts / 1000, tz=timezone.utc)
            record["created_at"] = ts
        record["symptom_type"] = record.pop("name", record.get("symptom_type", ""))
        record["severity"] = record.pop("intensity", record.get("severity", 0))
        record.setdefault("tags", [])
        record.setdefault("meds", [])
        version = 2

    if version != LOG_SCHEMA_VERSION:
        raise SchemaVersionError(f"Unsupported log schema version: {version!r}")

    record["schema_version"] = LOG_SCHEMA_VERSION
    return record


def migrate_kb_record(data: dict[str, Any]) -> dict[str, Any]:
    """Upgrade a knowledge-base record dict to the current schema version."""
    record = dict(data)
    version = record.get("schema_version", KB_SCHEMA_VERSION)
    if version != KB_SCHEMA_VERSION:
        raise SchemaVersionError(f"Unsupported KB document schema version: {version!r}")
    record["schema_version"] = KB_SCHEMA_VERSION
    return record
