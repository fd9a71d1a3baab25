"""
Logging configuration for the drift patch component.
"""
import logging
import sys
from typing import Optional

import structlog

from ..config.settings import settings

_configured = False


def configure_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        log_level: Log level override (optional)
        log_format: "json" or "console" (optional)
    """
    global _configured

    level = (log_level or settings.log_level).upper()
    fmt = log_format or settings.log_format

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
            if fmt == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
    )
    _configured = True


def get_logger(name: str, log_level: Optional[str] = None):
    """
    Get a configured logger instance.

    Args:
        name: Logger name (usually __name__)
        log_level: Log level override (optional)

    Returns:
        Configured structlog logger
    """
    if not _configured or log_level:
        configure_logging(log_level)
    return structlog.get_logger(name)


# Global logger instance
logger = get_logger("drift_patch")
