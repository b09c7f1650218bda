"""Medly server entry point: ``python -m medly.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from medly.core.config.settings import get_settings
from medly.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the Medly MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.medly_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger = logging.getLogger(__name__)
    if not settings.medly_allow_insecure_bind and not _is_loopback_host(settings.medly_host):
        raise RuntimeError(
            "Refusing to bind Medly server to a non-loopback host without an auth layer. "
            "Set MEDLY_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting Medly symptom log server on %s:%d",
        settings.medly_host,
        settings.medly_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.medly_host,
        port=settings.medly_port,
    )


if __name__ == "__main__":
    run()
