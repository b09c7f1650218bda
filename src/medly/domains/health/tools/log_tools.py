"""MCP tools for symptom logging and log analytics.

Logs are written to the encrypted store; the analytics tools read them
back, aggregate them, and return only derived, de-identified views.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from medly.core.llm.response import summarize_statistics
from medly.core.privacy.sanitizer import (
    build_symptom_context,
    detect_emergency_symptoms,
    sanitize_logs,
)
from medly.core.storage.models import CYCLE_PHASES, SEVERITY_MAX, SEVERITY_MIN, Log
from medly.domains.health.analytics.log_statistics import (
    compute_log_statistics,
    get_logs_from_last_n_days,
)
from medly.domains.health.analytics.pattern_card import build_pattern_card

if TYPE_CHECKING:
    from medly.core.audit.logger import AuditLogger
    from medly.core.config.settings import Settings
    from medly.core.storage.repository import LogRepository

logger = logging.getLogger(__name__)


def _parse_timestamp(value: str) -> datetime:
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def register_log_tools(
    mcp: FastMCP,
    repository: LogRepository,
    settings: Settings,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register symptom log tools on the MCP server."""

    def _audit(tool_name: str, tool_input: dict, start_time: float, **kwargs) -> None:
        if audit_logger is None:
            return
        audit_logger.log_tool_call(
            tool_name,
            tool_input,
            duration_ms=(time.monotonic() - start_time) * 1000,
            **kwargs,
        )

    @mcp.tool
    async def log_symptom(
        ctx: Context,
        symptom_type: str,
        severity: int,
        cycle_phase: str = "",
        notes: str = "",
        tags: list[str] | None = None,
        triggers: list[str] | None = None,
        meds: list[str] | None = None,
        duration_mins: int | None = None,
        occurred_at: str = "",
    ) -> str:
        """Record a symptom in your encrypted symptom log.

        Args:
            symptom_type: What you felt (e.g., 'Headache', 'Cramps', 'Fatigue').
            severity: How bad it was, 0 (none) to 10 (worst).
            cycle_phase: menstrual, follicular, ovulation, luteal or unknown.
            notes: Optional free-text notes. Stored encrypted.
            tags: Optional context tags (e.g., 'After eating').
            triggers: Optional suspected triggers (e.g., 'Stress').
            meds: Optional medications taken for it.
            duration_mins: Optional duration in minutes.
            occurred_at: When it happened (ISO 8601). Defaults to now.
        """
        start_time = time.monotonic()
        if not symptom_type.strip():
            return json.dumps({"status": "error", "message": "symptom_type is required."})
        if not SEVERITY_MIN <= severity <= SEVERITY_MAX:
            return json.dumps({
                "status": "error",
                "message": f"severity must be between {SEVERITY_MIN} and {SEVERITY_MAX}.",
            })
        phase = cycle_phase.strip().lower() or None
        if phase is not None and phase not in CYCLE_PHASES:
            return json.dumps({
                "status": "error",
                "message": f"cycle_phase must be one of: {', '.join(CYCLE_PHASES)}.",
            })
        try:
            created_at = _parse_timestamp(occurred_at) if occurred_at else datetime.now(timezone.utc)
        except ValueError:
            return json.dumps({"status": "error", "message": "occurred_at must be ISO 8601."})

        log = Log(
            id="",
            symptom_type=symptom_type.strip(),
            severity=severity,
            created_at=created_at,
            cycle_phase=phase,
            notes=notes.strip() or None,
            tags=list(tags or []),
            triggers=list(triggers or []),
            meds=list(meds or []),
            duration_mins=duration_mins,
        )
        log_id = repository.save(log)
        emergency = detect_emergency_symptoms(f"{symptom_type} {notes}")
        logger.info("Symptom log saved: %s (severity %d, id %s)", log.symptom_type, severity, log_id)
        _audit("log_symptom", log.to_dict(), start_time)

        result = {
            "status": "saved",
            "log_id": log_id,
            "symptom_type": log.symptom_type,
            "severity": severity,
            "created_at": created_at.isoformat(),
            "emergency_alert": emergency,
        }
        if emergency:
            result["message"] = (
                "Some of what you described can be a medical emergency. "
                "If you are in danger, call your local emergency number now."
            )
        return json.dumps(result)

    @mcp.tool
    async def delete_symptom_log(
        ctx: Context,
        log_id: str,
    ) -> str:
        """Permanently delete one symptom log.

        Pattern cards and statistics are recomputed from the remaining logs
        on every request, so nothing derived from the log survives.

        Args:
            log_id: The id returned by log_symptom.
        """
        start_time = time.monotonic()
        deleted = repository.delete(log_id)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if not deleted:
            return json.dumps({
                "status": "not_found",
                "log_id": log_id,
                "message": "No symptom log found with that ID.",
            })
        if audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name="delete_symptom_log",
                count=1,
                metadata={"log_id": log_id},
            )
        return json.dumps({
            "status": "deleted",
            "log_id": log_id,
            "duration_ms": round(elapsed_ms, 1),
        })

    @mcp.tool
    async def import_symptom_logs(
        ctx: Context,
        records: list[dict],
    ) -> str:
        """Import symptom logs exported from an earlier version of the app.

        Older records using ``name`` / ``intensity`` / ``timestamp`` (epoch
        milliseconds) are upgraded on the way in. Records that cannot be
        read are skipped and counted. Importing a record whose id already
        exists replaces it.

        Args:
            records: Exported log records (JSON objects).
        """
        start_time = time.monotonic()
        imported = repository.import_records(records)
        skipped = len(records) - imported
        logger.info("Imported %d symptom logs (%d skipped)", imported, skipped)
        _audit(
            "import_symptom_logs",
            {"records": len(records)},
            start_time,
            metadata={"imported": imported, "skipped": skipped},
        )
        return json.dumps({
            "status": "ok" if imported else "nothing_imported",
            "imported": imported,
            "skipped": skipped,
            "logs_stored": repository.count(),
        })

    @mcp.tool
    async def symptom_pattern_card(
        ctx: Context,
        days: int = 0,
    ) -> str:
        """Build a pattern card summarizing your symptom logs.

        Covers frequency, severity, cycle-phase association, context tags,
        triggers, medications and red-flag mentions. Raw notes never leave
        the server; only counts and summaries are returned.

        Args:
            days: Look-back window in days (default: the configured analysis window).
        """
        start_time = time.monotonic()
        window = days if days > 0 else settings.pattern_analysis_days
        since = datetime.now(timezone.utc) - timedelta(days=window)
        logs = repository.list(since=since, limit=settings.max_pattern_logs)
        card = build_pattern_card(logs)
        _audit("symptom_pattern_card", {"days": window}, start_time)

        return json.dumps({
            "status": "ok" if logs else "no_data",
            "logs_analyzed": len(logs),
            "pattern_card": card.to_dict(),
        }, indent=2)

    @mcp.tool
    async def review_recent_logs(
        ctx: Context,
        days: int = 3,
    ) -> str:
        """Summarize your most recent logged days.

        "Days" are days that have at least one entry, so a quiet week does
        not leave the review empty.

        Args:
            days: Number of most recent logged days to review (default: 3).
        """
        start_time = time.monotonic()
        if days < 1:
            return json.dumps({"status": "error", "message": "days must be at least 1."})

        all_logs = repository.list(limit=settings.max_review_logs)
        recent = get_logs_from_last_n_days(all_logs, days)
        stats = compute_log_statistics(recent)
        stats_dict = stats.to_dict()
        context = build_symptom_context(recent)
        _audit("review_recent_logs", {"days": days}, start_time)

        return json.dumps({
            "status": "ok" if recent else "no_data",
            "days_requested": days,
            "entries_reviewed": len(recent),
            "statistics": stats_dict,
            "time_range": context.time_range,
            "primary_concerns": context.primary_concerns,
            "entries": [entry.to_dict() for entry in sanitize_logs(recent)],
            "summary": summarize_statistics(stats_dict),
        }, indent=2)
