"""
Logging module for autopr.

Provides a simple interface to configure and retrieve loggers using Python's
built-in logging module.
"""

from __future__ import annotations

import contextvars
import logging
import os
import sys
from collections.abc import Iterable
from datetime import datetime
from logging.handlers import RotatingFileHandler

SYSTEM_CONTEXT = "autopr-system"

# Context variable for ticket tracking (thread-safe)
_ticket_context: contextvars.ContextVar[str] = contextvars.ContextVar(
    "ticket_context", default=SYSTEM_CONTEXT
)


def set_ticket_context(ticket_key: str | None = None, repository: str | None = None) -> None:
    """Set the current ticket context for logging.

    Args:
        ticket_key: Issue tracker key (e.g., "PROJ-123")
        repository: Optional target repository in 'org/repo' format
    """
    if ticket_key and repository:
        _ticket_context.set(f"{ticket_key}@{repository}")
    elif ticket_key:
        _ticket_context.set(ticket_key)
    else:
        _ticket_context.set(SYSTEM_CONTEXT)


def clear_ticket_context() -> None:
    """Clear the ticket context, resetting to autopr-system."""
    _ticket_context.set(SYSTEM_CONTEXT)


def get_ticket_context() -> str:
    """Get the current ticket context string."""
    return _ticket_context.get()


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    GRAY = "\033[90m"
    ORANGE = "\033[38;5;208m"


# Semantic color categories for INFO logs
# Keywords that indicate specific event types
SEMANTIC_COLORS = {
    # Starting - Green
    "starting": ("green", ">>>"),
    "launching": ("green", ">>>"),
    "creating": ("green", ">>>"),
    "fetching": ("green", ">>>"),
    # Completion/Success - Green
    "completed": ("green", "✓"),
    "launched": ("green", "✓"),
    "merged": ("green", "✓"),
    # Status changes - Yellow
    "status change": ("yellow", "→"),
    "transition": ("yellow", "→"),
    # Skipping - Gray
    "skipping": ("gray", "⊘"),
    "no items": ("gray", "⊘"),
    "already": ("gray", "⊘"),
    # Timeouts and expiry - Orange
    "timed out": ("orange", "⏱"),
    "expired": ("orange", "⏱"),
    # Label cleanup - Blue
    "removed label": ("blue", "🧹"),
}


class DateRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler that adds date (yyyy-mm-dd) to backup filenames."""

    def rotation_filename(self, default_name: str) -> str:
        """Generate backup filename with date."""
        # default_name is like "autopr.log.1"
        # We want "autopr.2024-01-15.log.1"
        base = self.baseFilename
        dirname = os.path.dirname(base)
        basename = os.path.basename(base)

        suffix = default_name[len(base) :]
        date_str = datetime.now().strftime("%Y-%m-%d")

        if "." in basename:
            name_part, ext = basename.rsplit(".", 1)
            new_name = f"{name_part}.{date_str}.{ext}{suffix}"
        else:
            new_name = f"{basename}.{date_str}{suffix}"

        return os.path.join(dirname, new_name)


class ColoredFormatter(logging.Formatter):
    """Custom formatter that adds colors based on log level and semantic content."""

    COLOR_MAP = {
        "green": Colors.GREEN,
        "blue": Colors.BLUE,
        "magenta": Colors.MAGENTA,
        "yellow": Colors.YELLOW,
        "gray": Colors.GRAY,
        "red": Colors.RED,
        "orange": Colors.ORANGE,
    }

    def _get_semantic_color(self, message: str) -> tuple[str, str] | None:
        """
        Determine semantic color based on message content.

        Returns tuple of (color_name, prefix_symbol) or None if no match.
        """
        message_lower = message.lower()
        for keyword, (color, prefix) in SEMANTIC_COLORS.items():
            if keyword in message_lower:
                return (color, prefix)
        return None

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)

        if record.levelno >= logging.ERROR:
            return f"{Colors.RED}{message}{Colors.RESET}"
        elif record.levelno >= logging.WARNING:
            return f"{Colors.YELLOW}{message}{Colors.RESET}"

        if record.levelno == logging.INFO:
            semantic = self._get_semantic_color(record.getMessage())
            if semantic:
                color_name, prefix = semantic
                color_code = self.COLOR_MAP.get(color_name, "")
                return f"{color_code}{prefix} {message}{Colors.RESET}"

        return message


class ContextAwareFormatter(ColoredFormatter):
    """Formatter that injects ticket context from contextvars."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with ticket context."""
        record.ticket_context = get_ticket_context()
        return super().format(record)


class PlainContextAwareFormatter(logging.Formatter):
    """Plain formatter (no colors) that injects ticket context from contextvars."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with ticket context."""
        record.ticket_context = get_ticket_context()
        return super().format(record)


class SecretMaskingFilter(logging.Filter):
    """Filter that masks secret values (API tokens) in log records.

    Every occurrence of a configured secret in the message or its string
    arguments is replaced with ``***``.
    """

    MASK = "***"

    def __init__(self, secrets: Iterable[str | None]) -> None:
        """Initialize SecretMaskingFilter.

        Args:
            secrets: Secret values to mask. Empty and None values are ignored.
        """
        super().__init__()
        self.secrets = [s for s in secrets if s]

    def filter(self, record: logging.LogRecord) -> bool:
        """Apply masking to the log record in place.

        Returns:
            True to allow all records through.
        """
        if not self.secrets:
            return True

        if record.msg:
            record.msg = self._mask_value(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self._mask_value(v) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._mask_value(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True

    def add_secret(self, secret: str | None) -> None:
        """Start masking a secret discovered after logging was configured."""
        if secret and secret not in self.secrets:
            self.secrets.append(secret)

    def _mask_value(self, value: str) -> str:
        for secret in self.secrets:
            value = value.replace(secret, self.MASK)
        return value


_masking_filter: SecretMaskingFilter | None = None


def register_secret(secret: str | None) -> None:
    """Mask a secret in every handler set up by setup_logging.

    Used for values only known at runtime, such as per-user agent API keys.
    Does nothing before setup_logging has run.
    """
    if _masking_filter is not None:
        _masking_filter.add_secret(secret)


def setup_logging(
    log_file: str | None = ".autopr/logs/autopr.log",
    log_size: int = 10 * 1024 * 1024,
    log_backups: int = 5,
    quiet: bool = False,
    secrets: Iterable[str | None] = (),
) -> None:
    """
    Configure the root logger with a standard format and level.

    The log level can be configured via the LOG_LEVEL environment variable.
    Default level is INFO.

    Args:
        log_file: Path to log file, or None to skip file logging.
        log_size: Max size in bytes before rotation. Default: 10MB
        log_backups: Number of backup files to keep. Default: 5
        quiet: If True, log to file only (no stdout/stderr). Used when
               the scheduler captures output elsewhere.
        secrets: Secret values (tokens) to mask in every handler.

    Format: "[%(asctime)s] %(levelname)s %(ticket_context)s %(name)s: %(message)s"
    Output: stdout for INFO/DEBUG, stderr for WARNING+, and file.
    """
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    global _masking_filter
    masking_filter = SecretMaskingFilter(secrets)
    _masking_filter = masking_filter

    log_format = "[%(asctime)s] %(levelname)s %(ticket_context)s %(name)s: %(message)s"
    formatter = ContextAwareFormatter(log_format)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if not quiet:
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(logging.DEBUG)
        stdout_handler.addFilter(lambda record: record.levelno < logging.WARNING)
        stdout_handler.addFilter(masking_filter)
        stdout_handler.setFormatter(formatter)

        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.WARNING)
        stderr_handler.addFilter(masking_filter)
        stderr_handler.setFormatter(formatter)

        root_logger.addHandler(stdout_handler)
        root_logger.addHandler(stderr_handler)

    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            file_handler = DateRotatingFileHandler(
                log_file,
                maxBytes=log_size,
                backupCount=log_backups,
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.addFilter(masking_filter)
            file_handler.setFormatter(PlainContextAwareFormatter(log_format))
            root_logger.addHandler(file_handler)
        except OSError as e:
            print(f"[logger] Failed to create file handler: {e}", file=sys.stderr)


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger with the specified name.

    Args:
        name: The name for the logger, typically __name__ of the calling module

    Returns:
        A configured Logger instance
    """
    return logging.getLogger(name)
