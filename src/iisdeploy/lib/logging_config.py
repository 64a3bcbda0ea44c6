"""Centralized logging configuration for iisdeploy.

Console output goes through a human-readable formatter; an optional rotating
log file keeps a DEBUG-level trail of every pipeline run on the server.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

_PACKAGE_LOGGER = "iisdeploy"
_REDACTED = "***"


class HumanReadableFormatter(logging.Formatter):
    """Human-readable formatter for console and file logs."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = False, detailed: bool = False) -> None:
        """Initialize formatter with optional color support."""
        self.use_colors = use_colors
        if detailed:
            fmt = (
                "%(asctime)s - %(name)s - %(levelname)s - "
                "[%(funcName)s:%(lineno)d] - %(message)s"
            )
        else:
            fmt = "%(asctime)s - %(levelname)s - %(message)s"
        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        """Format with optional colors for console output."""
        if self.use_colors and record.levelname in self.COLORS:
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = (
                f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
            )
        return super().format(record)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name."""
    return logging.getLogger(name)


def setup_logging(
    verbose: bool = False,
    quiet: bool = False,
    log_file: str | Path | None = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Configure logging for a CLI invocation.

    Args:
        verbose: Enable DEBUG output on the console
        quiet: Only show warnings and errors on the console
        log_file: Optional path of a rotating log file (always DEBUG level)
        max_bytes: Max size per log file before rotation
        backup_count: Number of rotated log files to keep
    """
    if verbose:
        console_level = logging.DEBUG
    elif quiet:
        console_level = logging.WARNING
    else:
        console_level = logging.INFO

    package_logger = logging.getLogger(_PACKAGE_LOGGER)
    package_logger.setLevel(logging.DEBUG)
    package_logger.handlers.clear()
    package_logger.propagate = False

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(
        HumanReadableFormatter(use_colors=sys.stderr.isatty(), detailed=verbose)
    )
    package_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(HumanReadableFormatter(detailed=True))
        package_logger.addHandler(file_handler)

    # Third-party HTTP libraries are noisy at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def redact(text: str, *secrets: str | None) -> str:
    """Replace every occurrence of the given secrets in text.

    Used before logging command lines that carry registration tokens or
    service account passwords.
    """
    for secret in secrets:
        if secret:
            text = text.replace(secret, _REDACTED)
    return text
