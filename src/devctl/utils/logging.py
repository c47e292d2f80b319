"""Structured logging utilities for devctl."""

import atexit
import logging
import sys
from pathlib import Path
from typing import Any, TextIO

import structlog

# Log files opened by setup_logging, keyed by resolved path
_log_files: dict[Path, TextIO] = {}


def _open_output(output: str) -> TextIO:
    """Map an output name to a stream; anything else is a file path.

    A file already opened for the same path is reused rather than reopened.
    """
    if output == "stdout":
        return sys.stdout
    if output == "stderr":
        return sys.stderr

    log_path = Path(output).expanduser().resolve()
    handle = _log_files.get(log_path)
    if handle is None or handle.closed:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handle = log_path.open("a", encoding="utf-8")
        _log_files[log_path] = handle
    return handle


def close_log_files() -> None:
    """Close every log file opened by setup_logging."""
    while _log_files:
        _, handle = _log_files.popitem()
        handle.close()


atexit.register(close_log_files)


def setup_logging(level: str = "INFO", format: str = "json", output: str = "stdout") -> None:
    """Configure structured logging for devctl.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json or console)
        output: Output destination (stdout, stderr or a log file path)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    stream = _open_output(output)

    # Configure standard logging (kubernetes and paramiko log through it)
    logging.basicConfig(
        format="%(message)s",
        stream=stream,
        level=log_level,
    )

    if format == "json":
        processors = [
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=stream.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Structured logger instance
    """
    return structlog.get_logger(name)


def log_error(
    logger: structlog.BoundLogger,
    error: Exception,
    operation: str | None = None,
    **kwargs: Any,
) -> None:
    """Log an error with structured context.

    Args:
        logger: Logger instance
        error: Exception instance
        operation: Operation name (optional)
        **kwargs: Additional context fields
    """
    context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        **kwargs,
    }

    if operation:
        context["operation"] = operation

    logger.error("error_occurred", **context, exc_info=True)
