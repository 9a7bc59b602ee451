#!/usr/bin/env python3
"""
mudslide Logging Configuration

Centralized logging setup for consistent formatting across the project.
The CLI calls configure_logging() once with the level resolved from Settings;
every module just asks for its logger.

Usage:
    from shared.log import get_logger

    logger = get_logger(__name__)
    logger.info("Connecting to bridge...")
    logger.warning("Connection closed", extra={"state": "open", "event": "connection.update"})
"""

from __future__ import annotations
import logging
import sys
from pathlib import Path
from typing import Optional
import os


# ========================================
#           LOGGING FORMATTERS
# ========================================

class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output with session context"""

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


class GenericFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        # Session context passed through extra=
        context = []

        if hasattr(record, 'state'):
            context.append(f"state={record.state}")
        if hasattr(record, 'event'):
            context.append(f"event={record.event}")
        if hasattr(record, 'recipient'):
            context.append(f"to={record.recipient}")
        if hasattr(record, 'attempt'):
            context.append(f"attempt={record.attempt}")

        if context:
            original = record.msg
            record.msg = f"[{' '.join(context)}] {record.msg}"
            try:
                return super().format(record)
            finally:
                record.msg = original

        return super().format(record)


class ContextColoredFormatter(GenericFormatter, ColoredFormatter):
    pass


# ========================================
#           LOGGING CONFIGURATION
# ========================================

# Loggers of these packages share one configuration
_ROOT_PACKAGES = ("mudslide", "shared")


def get_logger(name: str) -> logging.Logger:
    """
    Get the logger for the given module.

    Args:
        name: Usually __name__ from the calling module

    Returns:
        Logger instance; handlers live on the package loggers set up by
        configure_logging(), so module loggers only propagate.
    """
    return logging.getLogger(name)


def configure_logging(level: str = "WARNING", log_file: Optional[Path] = None) -> None:
    """
    Configure the mudslide logger tree. Call this once at startup.

    Args:
        level: Log level name ("DEBUG", "INFO", "WARNING", "ERROR")
        log_file: Optional file that receives a plain copy of every record
    """
    log_level = _get_log_level(level)
    for package in _ROOT_PACKAGES:
        logger = logging.getLogger(package)
        logger.setLevel(log_level)

        # Clear existing handlers to avoid duplicates on reconfiguration
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

        _add_console_handler(logger, colored=_supports_color())
        if log_file is not None:
            _add_file_handler(logger, log_file)

        # Keep records away from whatever the root logger prints
        logger.propagate = False


def _get_log_level(level: str) -> int:
    """Map a level name to its logging constant; unknown names mean WARNING"""
    return getattr(logging, level.upper(), logging.WARNING)


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    """Add stderr handler; stdout belongs to command output"""

    fmt = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
    handler = logging.StreamHandler(sys.stderr)

    if colored:
        formatter: logging.Formatter = ContextColoredFormatter(
            fmt=fmt,
            datefmt='%H:%M:%S'
        )
    else:
        formatter = GenericFormatter(
            fmt=fmt,
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger, log_file: Path) -> None:
    """Add file handler"""

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")

    formatter = GenericFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if terminal supports color output"""

    # stderr must be a terminal
    if not (hasattr(sys.stderr, "isatty") and sys.stderr.isatty()):
        return False

    # TERM should not be dumb
    if os.getenv("TERM", "") == "dumb":
        return False

    # Windows-specific check
    if sys.platform == "win32":
        # On modern Windows terminals, ANSI colors are supported
        return os.getenv("ANSICON") is not None or os.getenv("WT_SESSION") is not None or os.getenv("TERM_PROGRAM") == "vscode" or "WindowsTerminal" in os.getenv("TERM", "")

    return True
