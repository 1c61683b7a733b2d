"""Library Service MCP server.

Exposes the circulation tools over the MCP stdio transport so an operator's
assistant can check out, return and renew loans and trigger the overdue sweep.
stdout carries the protocol; every log line goes to stderr.
"""

import logging

from fastmcp import FastMCP

from . import __version__
from .runtime import ServiceContainer, set_container
from .tools import all_tools

logger = logging.getLogger(__name__)


def create_mcp_server(container: ServiceContainer) -> FastMCP:
    """Build a FastMCP server whose tools act on ``container``."""
    set_container(container)

    mcp = FastMCP(
        name="library-service",
        instructions=(
            f"Library Service {__version__} - circulation desk tools. Check books out by id "
            "or ISBN, return and renew checkouts, list overdue loans and run the overdue "
            "notification sweep."
        ),
    )

    for tool in all_tools:
        logger.debug("Registering tool: %s", tool["name"])
        mcp.tool(
            name=tool["name"],
            description=tool["description"],
        )(tool["handler"])

    logger.info("Registered %d tools", len(all_tools))
    return mcp


def run_stdio(container: ServiceContainer) -> None:
    mcp = create_mcp_server(container)
    logger.info("Starting Library Service MCP server on stdio")
    try:
        mcp.run(transport="stdio")
    except KeyboardInterrupt:
        logger.info("MCP server interrupted")
    finally:
        container.close()
        logger.info("MCP server shutdown complete")
