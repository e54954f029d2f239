"""
Structured Logging Configuration

Configures structlog on top of the standard library so every module can use
``structlog.get_logger(__name__)`` with event-style messages. JSON output is
used in production and a console renderer everywhere else.
"""

import logging
import sys
from typing import Optional

import structlog

from journey_core.config import Settings, get_settings


_configured = False


def configure_logging(settings: Optional[Settings] = None, force: bool = False) -> None:
    """
    Configure structlog and the root stdlib logger.

    Args:
        settings: Settings to read level and format from (defaults to cached settings)
        force: Reconfigure even if logging was already configured
    """
    global _configured
    if _configured and not force:
        return

    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
        force=True,
    )

    if settings.log_format == "json" or settings.environment == "production":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True
    structlog.get_logger(__name__).debug(
        "logging_configured",
        service=settings.service_name,
        level=settings.log_level,
        format=settings.log_format,
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, bound to the service name."""
    return structlog.get_logger(name).bind(service=get_settings().service_name)
