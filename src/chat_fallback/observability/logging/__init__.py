"""Structured logging configuration and utilities."""

from .config import configure_from_settings, setup_logging
from .correlation import (
    CorrelationIDMiddleware,
    generate_correlation_id,
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)

__all__ = [
    "setup_logging",
    "configure_from_settings",
    "CorrelationIDMiddleware",
    "generate_correlation_id",
    "get_correlation_id",
    "reset_correlation_id",
    "set_correlation_id",
]
