"""MCP tools for the health chat assistant and pre-send privacy checks."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from medly.core.privacy.policy import normalize_privacy_mode
from medly.core.privacy.sanitizer import redact_pii, validate_no_obvious_pii

if TYPE_CHECKING:
    from medly.core.audit.logger import AuditLogger
    from medly.domains.health.chat.session import ChatSessionManager

logger = logging.getLogger(__name__)

EMERGENCY_NOTICE = (
    "Some of what you described can be a medical emergency. "
    "If you are in danger, call your local emergency number now."
)


def register_chat_tools(
    mcp: FastMCP,
    sessions: ChatSessionManager,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register chat tools on the MCP server."""

    @mcp.tool
    async def health_chat(
        ctx: Context,
        message: str,
        thread_id: str = "default",
        privacy_mode: str = "",
    ) -> str:
        """Ask the health assistant about your logged symptoms.

        Your message is de-identified before it is sent anywhere. Answers
        are grounded in your own logs and the local reference library, and
        every cited reference is returned with its id.

        Args:
            message: Your question (e.g., 'Review my last 3 days').
            thread_id: Conversation thread to continue (default: 'default').
            privacy_mode: strict, standard or explicit. Controls how much
                per-log detail the assistant sees. Defaults to the server setting.
        """
        start_time = time.monotonic()
        session = sessions.get(thread_id)
        if privacy_mode:
            session.privacy_mode = normalize_privacy_mode(privacy_mode, session.privacy_mode)

        result = await session.send_message(message)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_tool_call(
                "health_chat",
                {"message": redact_pii(message), "thread_id": thread_id},
                privacy_mode=session.privacy_mode,
                thread_id=thread_id,
                duration_ms=elapsed_ms,
                status="error" if result.failed else "success",
                metadata={"intent": result.intent, "used_fallback": result.used_fallback},
            )

        payload = result.to_dict()
        payload["references"] = [
            {"id": doc.id, "title": doc.title, "source": doc.source, "url": doc.url}
            for doc in session.resolve_citations(result.citations)
        ]
        if result.emergency_alert:
            payload["emergency_notice"] = EMERGENCY_NOTICE
        return json.dumps(payload, indent=2)

    @mcp.tool
    async def check_text_for_pii(
        ctx: Context,
        text: str,
    ) -> str:
        """Check text for obvious personal identifiers before sharing it.

        Advisory only: returns warnings and the redacted form that would be
        sent. Nothing is stored.

        Args:
            text: The text to check.
        """
        validation = validate_no_obvious_pii(text)
        return json.dumps({
            "safe": validation.safe,
            "warnings": validation.warnings,
            "redacted": redact_pii(text),
        }, indent=2)
