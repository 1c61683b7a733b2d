"""Logging and Logfire observability for the Library Service."""

import logging
import sys

import logfire

from ..config import ServiceConfig

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(config: ServiceConfig, stream=sys.stderr) -> None:
    """Configure root logging for an entry point.

    stderr is the default so that stdout stays clean for the MCP stdio transport.
    """
    level = logging.DEBUG if config.debug else getattr(logging, config.log_level)
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[logging.StreamHandler(stream)])

    if not config.is_development:
        # Reduce noise from third-party libraries but keep warnings
        for noisy in ("httpx", "httpcore", "fastmcp", "uvicorn.access"):
            logging.getLogger(noisy).setLevel(logging.WARNING)


def initialize_observability(config: ServiceConfig) -> None:
    """Initialize Logfire with configuration.

    Spans are always created; they are only exported when ``logfire_enabled`` is set.
    """
    logfire.configure(
        service_name="library-service",
        environment=config.environment,
        send_to_logfire=config.logfire_enabled,
        console=False,
    )

    if config.logfire_enabled:
        logger.info("Logfire export enabled (environment=%s)", config.environment)
        if config.environment == "production":
            logfire.instrument_system_metrics()
    else:
        logger.debug("Logfire export disabled via configuration")


__all__ = [
    "LOG_FORMAT",
    "configure_logging",
    "initialize_observability",
]
