"""MCP tools for searching the local reference knowledge base."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from medly.domains.health.retrieval.evidence import (
    has_sufficient_relevance,
    retrieve_kb_documents,
)

if TYPE_CHECKING:
    from medly.core.audit.logger import AuditLogger
    from medly.core.storage.repository import KnowledgeBaseRepository

logger = logging.getLogger(__name__)


def register_knowledge_tools(
    mcp: FastMCP,
    knowledge: KnowledgeBaseRepository,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register knowledge-base search tools on the MCP server."""

    @mcp.tool
    async def search_health_references(
        ctx: Context,
        query: str,
        top_n: int = 8,
    ) -> str:
        """Search the bundled women's-health reference library.

        Matching is keyword-based with synonym expansion ("period" also
        finds "menstrual" and "cycle"). Nothing leaves the server.

        Args:
            query: What to look up (e.g., 'painful periods', 'uti').
            top_n: Maximum number of references to return (default: 8).
        """
        start_time = time.monotonic()
        chunks = retrieve_kb_documents(query, knowledge.get_all(), top_n=max(1, top_n))
        sufficient = has_sufficient_relevance(chunks)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_tool_call(
                "search_health_references",
                {"query": query, "top_n": top_n},
                duration_ms=elapsed_ms,
                metadata={"results": len(chunks)},
            )

        return json.dumps({
            "status": "ok" if chunks else "no_results",
            "sufficient_relevance": sufficient,
            "results": [chunk.to_dict() for chunk in chunks],
        }, indent=2)
