"""Structured logging for phono-grammar.

Provides configurable logging with:
- Multiple verbosity levels
- Text or JSON log lines
- Optional file handler
- Helpers for logging named operations
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Any

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "message",
        "taskName",
    }
)

ROOT_LOGGER_NAME = "phono_grammar"


class LogLevel(IntEnum):
    """Log verbosity levels."""

    QUIET = 0  # Only errors
    NORMAL = 1  # Errors + warnings
    VERBOSE = 2  # Errors + warnings + info
    DEBUG = 3  # Everything


@dataclass
class LogConfig:
    """Configuration for logging.

    Attributes:
        level: Verbosity level
        log_file: Optional path to log file
        json_format: Use JSON format for logs
        include_timestamp: Include timestamp in logs
        include_context: Include extra fields in logs
        color: Use colored output (console only)
    """

    level: LogLevel = LogLevel.NORMAL
    log_file: Path | None = None
    json_format: bool = False
    include_timestamp: bool = True
    include_context: bool = True
    color: bool = True


class Colors:
    """ANSI color codes."""

    RESET = "\033[0m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    CYAN = "\033[96m"
    GRAY = "\033[90m"


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Collect the fields passed through ``extra=`` on a log call."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS
    }


class StructuredFormatter(logging.Formatter):
    """Formatter that renders records as ``time | level | logger | message [k=v]``.

    With ``json_format`` each record becomes one JSON object instead.
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.GRAY,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.RED,
    }

    def __init__(
        self,
        json_format: bool = False,
        include_timestamp: bool = True,
        include_context: bool = True,
        color: bool = True,
    ):
        super().__init__()
        self.json_format = json_format
        self.include_timestamp = include_timestamp
        self.include_context = include_context
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record."""
        if self.json_format:
            return self._format_json(record)
        return self._format_text(record)

    def _format_json(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "level": record.levelname.lower(),
            "message": record.getMessage(),
            "logger": record.name,
        }

        if self.include_timestamp:
            data["timestamp"] = datetime.fromtimestamp(record.created).isoformat()

        if self.include_context:
            extra = {}
            for key, value in _extra_fields(record).items():
                try:
                    json.dumps(value)
                    extra[key] = value
                except (TypeError, ValueError):
                    extra[key] = str(value)
            if extra:
                data["context"] = extra

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data)

    def _format_text(self, record: logging.LogRecord) -> str:
        parts = []

        if self.include_timestamp:
            timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
            parts.append(self._paint(timestamp, Colors.GRAY))

        level = record.levelname.upper()[:5].ljust(5)
        parts.append(self._paint(level, self.LEVEL_COLORS.get(record.levelno, Colors.RESET)))

        # Shorten long module paths so the columns line up
        name = record.name
        if len(name) > 24:
            name = "..." + name[-21:]
        parts.append(self._paint(f"{name:>24}", Colors.CYAN))

        parts.append(record.getMessage())
        result = " | ".join(parts)

        if self.include_context:
            extra = _extra_fields(record)
            if extra:
                context_str = " ".join(f"{k}={v}" for k, v in extra.items())
                result += " " + self._paint(f"[{context_str}]", Colors.GRAY)

        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)

        return result

    def _paint(self, text: str, color: str) -> str:
        if not self.color:
            return text
        return f"{color}{text}{Colors.RESET}"


_config: LogConfig = LogConfig()
_initialized: bool = False

_LEVEL_MAP = {
    LogLevel.QUIET: logging.ERROR,
    LogLevel.NORMAL: logging.WARNING,
    LogLevel.VERBOSE: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
}


def configure_logging(config: LogConfig | None = None) -> None:
    """Configure the ``phono_grammar`` logger tree.

    Args:
        config: Logging configuration; keeps the current one when omitted
    """
    global _config, _initialized

    if config:
        _config = config

    log_level = _LEVEL_MAP[_config.level]

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG if _config.log_file else log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        StructuredFormatter(
            json_format=_config.json_format,
            include_timestamp=_config.include_timestamp,
            include_context=_config.include_context,
            color=_config.color and sys.stderr.isatty(),
        )
    )
    root_logger.addHandler(console_handler)

    if _config.log_file:
        _config.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(_config.log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_handler.setFormatter(
            StructuredFormatter(
                json_format=_config.json_format,
                include_timestamp=True,
                include_context=True,
                color=False,
            )
        )
        root_logger.addHandler(file_handler)

    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger under the configured ``phono_grammar`` tree
    """
    if not _initialized:
        configure_logging()
    return logging.getLogger(name)


def set_verbosity(level: LogLevel) -> None:
    """Set global verbosity level.

    Args:
        level: Verbosity level
    """
    _config.level = level
    configure_logging(_config)


def enable_file_logging(log_file: Path) -> None:
    """Enable logging to a file.

    Args:
        log_file: Path to log file
    """
    _config.log_file = log_file
    configure_logging(_config)


def log_operation_start(logger: logging.Logger, operation: str, **context: Any) -> None:
    """Log the start of an operation."""
    logger.info(f"Starting: {operation}", extra=context)


def log_operation_complete(
    logger: logging.Logger,
    operation: str,
    duration: float | None = None,
    **context: Any,
) -> None:
    """Log the completion of an operation.

    Args:
        logger: Logger to use
        operation: Operation name
        duration: Optional duration in seconds
        **context: Additional context
    """
    if duration is not None:
        context["duration_seconds"] = round(duration, 3)
    logger.info(f"Completed: {operation}", extra=context)


def log_operation_failed(
    logger: logging.Logger,
    operation: str,
    error: Exception,
    level: int = logging.ERROR,
    **context: Any,
) -> None:
    """Log a failed operation.

    Args:
        logger: Logger to use
        operation: Operation name
        error: Error that occurred
        level: Log level (callers that re-raise use DEBUG)
        **context: Additional context
    """
    context["error_type"] = type(error).__name__
    context["error_message"] = str(error)
    logger.log(level, f"Failed: {operation}", extra=context)
