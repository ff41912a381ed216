from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, cast

import structlog
from loguru import logger as loguru_logger
from structlog.exceptions import DropEvent
from structlog.stdlib import BoundLogger
from structlog.typing import EventDict, Processor, WrappedLogger

from device_dna.config.settings import log_dir
from device_dna.utils.sanitize import sanitize_log_message


CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <7}</level> | {message} | {extra}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {name}:{line} | {message} | {extra}"
DEFAULT_LOG_FILENAME = "device-dna.log"

# Event keys whose values never reach a sink.
_REDACTED_KEYS = frozenset({"access_token", "authorization", "client_secret", "password", "token"})


@dataclass(slots=True)
class LoggingOptions:
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False
    rotation: str = "10 MB"
    retention: str = "14 days"
    log_path: Path | None = None
    file_logging: bool = True

    @property
    def console_level(self) -> str:
        return "DEBUG" if self.debug else self.level


_is_configured = False


def _redact(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    for key in _REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    event = event_dict.get("event")
    if isinstance(event, str):
        event_dict["event"] = sanitize_log_message(event)
    return event_dict


def _to_loguru(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    level = str(event_dict.pop("level", "info")).upper()
    message = str(event_dict.pop("event", ""))
    event_dict.pop("timestamp", None)
    event_dict.pop("stack", None)
    exception = event_dict.pop("exception", None)
    if exception:
        message = f"{message}\n{exception}"
    loguru_logger.bind(**event_dict).opt(depth=6).log(level, message)
    # loguru owns the output from here on.
    raise DropEvent


def _add_sinks(opts: LoggingOptions) -> Path | None:
    loguru_logger.remove()
    loguru_logger.add(
        sys.stderr,
        level=opts.console_level,
        colorize=True,
        backtrace=opts.debug,
        diagnose=opts.debug,
        format=CONSOLE_FORMAT,
    )
    if not opts.file_logging:
        return None
    path = opts.log_path or log_dir() / DEFAULT_LOG_FILENAME
    loguru_logger.add(
        path,
        level="DEBUG",
        rotation=opts.rotation,
        retention=opts.retention,
        encoding="utf-8",
        format=FILE_FORMAT,
    )
    return path


def configure_logging(options: LoggingOptions | None = None) -> Path | None:
    """Send structlog events to loguru: stderr always, plus a rotating debug file.

    Returns the log file path, or ``None`` when file logging is off.
    """

    global _is_configured

    opts = options or LoggingOptions()
    path = _add_sinks(opts)
    # The file sink records everything; without it only the console level matters.
    threshold = logging.DEBUG if path else logging.getLevelName(opts.console_level)
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _redact,
        _to_loguru,
    ]
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        cache_logger_on_first_use=True,
    )
    _is_configured = True
    return path


def get_logger(*initial_values: object, **initial_kw: object) -> BoundLogger:
    if not _is_configured:
        configure_logging(LoggingOptions(file_logging=False))
    return cast(BoundLogger, structlog.get_logger(*initial_values, **initial_kw))


__all__ = ["LoggingOptions", "configure_logging", "get_logger"]
