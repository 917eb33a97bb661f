"""Logging configuration and setup."""

import logging
import sys

import structlog
from structlog.stdlib import LoggerFactory

from chat_fallback.config.settings import LoggingSettings, LogLevel

from .correlation import CorrelationIDProcessor


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    format_type: str = "json",
    log_file: str | None = None,
    enable_correlation: bool = True,
    include_timestamps: bool = True,
) -> None:
    """Setup structured logging configuration."""
    handler: logging.Handler = (
        logging.FileHandler(log_file) if log_file else logging.StreamHandler(sys.stdout)
    )
    logging.basicConfig(
        level=getattr(logging, level.value),
        format="%(message)s",
        handlers=[handler],
        force=True,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if enable_correlation:
        processors.append(CorrelationIDProcessor())

    if include_timestamps:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))

    if format_type == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,  # type: ignore[arg-type]
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_from_settings(settings: LoggingSettings) -> None:
    """Setup logging from a settings group."""
    setup_logging(
        level=settings.level,
        format_type=settings.format,
        log_file=settings.file,
    )
