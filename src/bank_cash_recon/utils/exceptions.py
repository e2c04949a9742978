"""Custom exceptions for the reconciliation application."""


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    pass


class InvalidInputError(ReconciliationError):
    """A typed value or query could not be parsed into an amount."""

    pass


class RecordParseError(ReconciliationError):
    """Error parsing a file of normalized rows."""

    pass


class ConfigurationError(ReconciliationError):
    """Error in configuration."""

    pass


class RuleDefinitionError(ConfigurationError):
    """A custom reconciliation rule is malformed."""

    pass


class ValidationError(ReconciliationError):
    """Data validation error."""

    pass


class ReportGenerationError(ReconciliationError):
    """Error generating an export file."""

    pass
