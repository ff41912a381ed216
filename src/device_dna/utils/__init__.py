"""Shared utility helpers for DeviceDNA."""

from .logging import LoggingOptions, configure_logging, get_logger
from .sanitize import odata_literal, sanitize_log_message

__all__ = [
    "LoggingOptions",
    "configure_logging",
    "get_logger",
    "odata_literal",
    "sanitize_log_message",
]
