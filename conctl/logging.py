"""Secret redaction for conctl log output.

Values registered here are masked by SecretRedactingFilter, which
setup_logger attaches to every handler it creates.
"""
import logging
import sys
from typing import Optional, Set

REDACTED = "[REDACTED]"

# Secret values registered at runtime; masked in every log record
_secret_values: Set[str] = set()


def register_secret(value: str) -> None:
    """Mark a value so it never shows up in log output."""
    if value:
        _secret_values.add(value)


def clear_secrets() -> None:
    _secret_values.clear()


def mask(text: str) -> str:
    """Replace every registered secret occurring in text."""
    # Longest first so a secret containing another is masked whole
    for secret in sorted(_secret_values, key=len, reverse=True):
        text = text.replace(secret, REDACTED)
    return text


class SecretRedactingFilter(logging.Filter):
    """Mask registered secret values in log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if _secret_values:
            record.msg = mask(record.getMessage())
            record.args = None
        return True


def setup_logger(name: str, level: int = logging.INFO, fmt: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with the specified name and log level.

    The handler created here masks registered secrets, so output stays
    redacted whether or not the root logger is configured.

    Args:
        name: The name of the logger
        level: The logging level (default: logging.INFO)
        fmt: Log record format (default: timestamp, name, level and message)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Don't add handlers if they're already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.addFilter(SecretRedactingFilter())

        formatter = logging.Formatter(
            fmt or '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(level)

    return logger
