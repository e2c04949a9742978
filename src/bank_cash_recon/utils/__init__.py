"""Utility modules."""

from .exceptions import (
    ReconciliationError,
    InvalidInputError,
    RecordParseError,
    ConfigurationError,
    RuleDefinitionError,
    ValidationError,
    ReportGenerationError,
)
from .logging_config import setup_logging, get_logger, get_audit_logger

__all__ = [
    "ReconciliationError",
    "InvalidInputError",
    "RecordParseError",
    "ConfigurationError",
    "RuleDefinitionError",
    "ValidationError",
    "ReportGenerationError",
    "setup_logging",
    "get_logger",
    "get_audit_logger",
]
