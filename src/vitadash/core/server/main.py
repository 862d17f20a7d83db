"""VitaDash server entry point: ``python -m vitadash.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from vitadash.core.config.settings import get_settings
from vitadash.core.server.app import create_app

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the VitaDash MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.vitadash_log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    logger = logging.getLogger(__name__)
    if not settings.vitadash_allow_insecure_bind and not _is_loopback_host(settings.vitadash_host):
        raise RuntimeError(
            "Refusing to bind VitaDash to a non-loopback host: device control "
            "would be reachable from the network. "
            "Set VITADASH_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting VitaDash server on %s:%d",
        settings.vitadash_host,
        settings.vitadash_port,
    )

    mcp = create_app(settings_override=settings)
    mcp.run(
        transport="streamable-http",
        host=settings.vitadash_host,
        port=settings.vitadash_port,
    )


if __name__ == "__main__":
    run()
