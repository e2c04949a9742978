"""Logging configuration for the reconciliation application."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

ROOT_LOGGER_NAME = "bank_cash_recon"
AUDIT_LOGGER_NAME = f"{ROOT_LOGGER_NAME}.audit"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"


def _resolve_level(level: Union[int, str]) -> int:
    """Accept either a logging constant or a level name such as "DEBUG"."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown logging level: {level}")
    return resolved


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
    log_format: Optional[str] = None,
) -> logging.Logger:
    """
    Configure application logging.

    Args:
        level: Logging level, either a constant (logging.DEBUG) or a name ("DEBUG")
        log_file: Optional path to a rotating log file
        log_format: Optional custom console format string

    Returns:
        The configured ``bank_cash_recon`` logger
    """
    numeric_level = _resolve_level(level)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(numeric_level)

    # Reconfiguring must not stack handlers
    logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(logging.Formatter(log_format or DEFAULT_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger of the application logger."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def get_audit_logger() -> logging.Logger:
    """
    Logger for conference outcomes (matched, not found, already conferred).

    Kept separate so operators can route the audit trail to its own handler.
    """
    return logging.getLogger(AUDIT_LOGGER_NAME)
