"""
Command line entry point.

Usage:
    library-service init-db [--drop-existing]
    library-service serve [--host HOST] [--port PORT]
    library-service mcp
    library-service sweep

``sweep`` is the daily overdue hook, meant for cron or a scheduler. It exits 0
even when individual notices fail; those are in the failure log.
"""

import argparse
import logging
import sys

import uvicorn

from .api import create_app
from .config import get_config
from .mcp_server import run_stdio
from .observability import configure_logging, initialize_observability
from .runtime import ServiceContainer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="library-service",
        description="Library management backend",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_db = subparsers.add_parser("init-db", help="Create the database schema")
    init_db.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating new ones",
    )

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", help="Override LIBRARY_HTTP_HOST")
    serve.add_argument("--port", type=int, help="Override LIBRARY_HTTP_PORT")

    subparsers.add_parser("mcp", help="Run the MCP server on stdio")
    subparsers.add_parser("sweep", help="Send overdue notices once and exit")

    return parser


def _init_db(container: ServiceContainer, drop_existing: bool) -> int:
    if not container.db.verify_connection():
        logger.error("Failed to connect to database")
        return 1
    container.db.init_database(drop_existing=drop_existing)
    logger.info("Database schema ready at %s", container.config.database_url)
    return 0


def _serve(container: ServiceContainer, host: str | None, port: int | None) -> int:
    app = create_app(container)
    uvicorn.run(
        app,
        host=host or container.config.http_host,
        port=port or container.config.http_port,
        log_level=container.config.log_level.lower(),
    )
    return 0


def _sweep(container: ServiceContainer) -> int:
    if container.email_sender is None:
        logger.error("No e-mail provider configured; set LIBRARY_EMAIL_API_KEY")
        return 1
    report = container.overdue_sweep.run()
    print(
        f"examined={report.examined} sent={report.sent} failed={report.failed} "
        f"skipped={report.skipped}"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    config = get_config()
    configure_logging(config)
    initialize_observability(config)

    container = ServiceContainer.from_config(config)

    if args.command == "mcp":
        run_stdio(container)
        return 0

    try:
        if args.command == "init-db":
            return _init_db(container, args.drop_existing)
        if args.command == "serve":
            return _serve(container, args.host, args.port)
        if args.command == "sweep":
            return _sweep(container)
    finally:
        container.close()

    return 2


if __name__ == "__main__":
    sys.exit(main())
