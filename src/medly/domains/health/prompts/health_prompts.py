"""MCP prompts for the chat assistant's feature buttons.

Each prompt text is what the button sends as the chat message; the intent
classifier routes it to the matching answer contract.
"""

from __future__ import annotations

from fastmcp import FastMCP


def register_health_prompts(mcp: FastMCP) -> None:
    """Register health domain MCP prompts."""

    @mcp.prompt()
    def review_recent_prompt(days: int = 3) -> str:
        """Review the most recent logged days."""
        return f"Review my last {days} days"

    @mcp.prompt()
    def understand_patterns_prompt() -> str:
        """Explain the patterns in recent logs, with questions for a clinician."""
        return "Understand my symptom patterns"

    @mcp.prompt()
    def compare_history_prompt(period: str = "full history") -> str:
        """Compare recent logs to a longer period ('full history' or e.g. '30 days')."""
        return f"Compare to {period}"

    @mcp.prompt()
    def add_detail_prompt() -> str:
        """Add more detail to a specific symptom."""
        return "Add more detail to a specific symptom"
