"""MCP Resources for answer-contract discovery."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from fastmcp import FastMCP

if TYPE_CHECKING:
    from medly.core.contract.registry import ContractRegistry


def register_health_contract_resources(mcp: FastMCP, registry: ContractRegistry) -> None:
    """Register answer-contract discovery resources on the MCP server."""

    @mcp.resource("contract://health/registry")
    def health_contract_registry_resource() -> str:
        """Discover the answer contracts that govern chat responses."""
        contracts = registry.all()
        return json.dumps(
            {
                "domain": "health",
                "contract_count": len(contracts),
                "contracts": [
                    {
                        "id": c.id,
                        "version": c.version,
                        "intent": c.intent,
                        "display_name": c.display_name,
                        "required_sections": c.required_sections,
                        "allow_citations": c.allow_citations,
                        "requires_statistics": c.requires_statistics,
                        "tags": c.tags,
                    }
                    for c in contracts
                ],
            },
            indent=2,
        )
