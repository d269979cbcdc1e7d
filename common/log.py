#!/usr/bin/env python3
"""
wschat Logging Configuration

Centralized logging setup for consistent formatting across the project.
Console output is colored when attached to a terminal; a log file is added
when WSCHAT_LOG_DIR is set.

Usage:
    from common.log import get_logger

    logger = get_logger(__name__)
    logger.info("Connecting...")
    logger.warning("Send failed", extra={"message_id": "5f0c...", "user": "Alice"})
"""

from __future__ import annotations
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from common.message import Message


# ========================================
#           LOGGING FORMATTERS
# ========================================

class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    # ANSI Color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class ContextFormatter(logging.Formatter):
    """Prefixes the message with chat context passed through ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        context = []

        if getattr(record, 'message_id', None):
            context.append(f"msg={str(record.message_id)[:8]}")
        if getattr(record, 'user', None):
            context.append(f"user={record.user}")
        if getattr(record, 'endpoint', None):
            context.append(f"endpoint={record.endpoint}")
        if getattr(record, 'state', None):
            context.append(f"state={record.state}")

        formatted = super().format(record)
        if context:
            return f"[{' '.join(context)}] {formatted}"
        return formatted


class ColoredContextFormatter(ContextFormatter, ColoredFormatter):
    pass


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_loggers_configured = set()

def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger for the given module.

    Args:
        name: Usually __name__ from the calling module
        level: Override log level ("DEBUG", "INFO", "WARNING", "ERROR")

    Returns:
        Configured logger instance

    Examples:
        logger = get_logger(__name__)
        logger.info("Session starting")

        # With context
        logger.warning("Send failed", extra={
            "message_id": message.id,
            "user": message.user,
        })
    """
    logger = logging.getLogger(name)

    # Only configure each logger once
    if name not in _loggers_configured:
        _configure_logger(logger, level)
        _loggers_configured.add(name)

    return logger


def _configure_logger(logger: logging.Logger, level: Optional[str] = None) -> None:
    """Configure a logger with appropriate handlers and formatters"""

    logger.setLevel(_get_log_level(level))

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    _add_console_handler(logger, colored=_is_development())
    if os.getenv('WSCHAT_LOG_DIR'):
        _add_file_handler(logger, Path(os.environ['WSCHAT_LOG_DIR']))

    # Prevent duplicate messages from parent loggers
    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    """Determine appropriate log level"""

    level = level or os.getenv('WSCHAT_LOG_LEVEL')
    if level:
        return getattr(logging, level.upper(), logging.INFO)

    return logging.DEBUG if _is_development() else logging.INFO


def _is_development() -> bool:
    """Detect if we're in development mode"""
    return (
        os.getenv('PYTHON_ENV', '').lower() in ['dev', 'development'] or
        'pytest' in sys.modules
    )


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    """Add console handler with appropriate formatter"""

    fmt = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
    handler = logging.StreamHandler(sys.stderr)

    if colored and _supports_color():
        formatter: logging.Formatter = ColoredContextFormatter(fmt=fmt, datefmt='%H:%M:%S')
    else:
        formatter = ContextFormatter(fmt=fmt, datefmt='%Y-%m-%d %H:%M:%S')

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger, log_dir: Path) -> None:
    """Add file handler writing to <log_dir>/wschat.log"""

    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / "wschat.log")

    formatter = ContextFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if terminal supports color output"""

    if not (hasattr(sys.stderr, "isatty") and sys.stderr.isatty()):
        return False

    if os.getenv("TERM", "") == "dumb":
        return False

    if sys.platform == "win32":
        return (
            os.getenv("ANSICON") is not None
            or os.getenv("WT_SESSION") is not None
            or os.getenv("TERM_PROGRAM") == "vscode"
        )

    return True


# ========================================
#           CONVENIENCE FUNCTIONS
# ========================================

def configure_root_logging(level: str = "INFO") -> None:
    """
    Configure root logging for the entire application.
    Call this once at application startup.

    Args:
        level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
    """
    root_logger = logging.getLogger()
    _configure_logger(root_logger, level)
    for name in _loggers_configured:
        logging.getLogger(name).setLevel(_get_log_level(level))


def log_chat_message(logger: logging.Logger, level: str, text: str,
                     message: Optional["Message"] = None,
                     **context: Any) -> None:
    """
    Log a line about a chat message with structured context.

    Args:
        logger: Logger instance
        level: Log level ("debug", "info", "warning", "error")
        text: Log message
        message: Chat message for automatic context extraction
        **context: Additional context fields

    Example:
        log_chat_message(logger, "debug", "Appended inbound message", message=msg)
    """

    extra_context = {}

    if message is not None:
        extra_context.update({
            'message_id': message.id,
            'user': message.user,
        })

    extra_context.update(context)

    log_func = getattr(logger, level.lower())
    log_func(text, extra=extra_context)
