"""Bandwidth server entry point — ``python -m bandwidth.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from bandwidth.core.config.settings import get_settings
from bandwidth.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the Bandwidth MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.bandwidth_log_level.upper(), logging.INFO)
    )

    logger = logging.getLogger(__name__)
    if not settings.bandwidth_allow_insecure_bind and not _is_loopback_host(
        settings.bandwidth_host
    ):
        raise RuntimeError(
            "Refusing to bind the bandwidth server to a non-loopback host without "
            "an auth layer. Set BANDWIDTH_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting Bandwidth Health server on %s:%d",
        settings.bandwidth_host,
        settings.bandwidth_port,
    )

    mcp = create_app(start_listener=True)
    mcp.run(
        transport="streamable-http",
        host=settings.bandwidth_host,
        port=settings.bandwidth_port,
    )


if __name__ == "__main__":
    run()
