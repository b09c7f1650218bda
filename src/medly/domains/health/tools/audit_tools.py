"""MCP tools for viewing the audit trail.

The audit log records every tool call and every generation request with a
hash of its input, so the user can see when de-identified data was sent to
an external generation backend without the trail itself holding any notes.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from medly.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

AUDIT_ACTIONS = ("tool_invocation", "generation", "data_delete")
MAX_EVENTS = 200

# Columns shown to the user; ids and input hashes stay internal.
_DISPLAY_FIELDS = (
    "timestamp", "action", "tool_name", "privacy_mode", "thread_id",
    "llm_provider", "status", "error_type", "duration_ms",
)


def _display_event(event: dict[str, Any]) -> dict[str, Any]:
    shown = {name: event.get(name) for name in _DISPLAY_FIELDS}
    shown["llm_disclosed"] = bool(event.get("llm_disclosed"))
    return shown


def register_audit_tools(
    mcp: FastMCP,
    audit_logger: AuditLogger,
) -> None:
    """Register audit trail tools on the MCP server."""

    @mcp.tool
    async def audit_summary(
        ctx: Context,
        days: int = 30,
        limit: int = 20,
        action: str = "",
        thread_id: str = "",
    ) -> str:
        """View recent tool calls, generation requests and disclosure counts.

        Shows which tools ran and when, which privacy mode each chat turn
        used, and whether de-identified log data was sent to an external
        generation backend.

        Args:
            days: Number of days to look back (default: 30).
            limit: Maximum events to list (default: 20, at most 200).
            action: Only list tool_invocation, generation or data_delete events.
            thread_id: Only list events for one chat thread.
        """
        if days < 1:
            return json.dumps({"status": "error", "message": "days must be at least 1."})
        action = action.strip()
        if action and action not in AUDIT_ACTIONS:
            return json.dumps({
                "status": "error",
                "message": f"action must be one of: {', '.join(AUDIT_ACTIONS)}.",
            })
        limit = max(1, min(limit, MAX_EVENTS))
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()

        recent_events = audit_logger.get_events(
            action=action or None,
            thread_id=thread_id.strip() or None,
            since=since,
            limit=limit,
        )

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": audit_logger.count_events(since=since),
            "events_by_action": audit_logger.count_by_action(since=since),
            "llm_disclosures": audit_logger.count_disclosures(since=since),
            "filters": {"action": action or None, "thread_id": thread_id.strip() or None},
            "recent_events": [_display_event(event) for event in recent_events],
            "note": (
                "Input hashes only: no notes or chat messages are kept here. "
                "llm_disclosures counts generation requests sent off-device."
            ),
        }, indent=2)
