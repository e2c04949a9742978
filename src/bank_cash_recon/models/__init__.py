"""Data models for reconciliation."""

from .record import (
    Record,
    ConferredItem,
    ConferenceEvent,
    ConferenceOutcome,
    parse_amount,
    to_money,
    normalize_identifier,
)
from .reconciliation import (
    ReconciliationSource,
    SourceType,
    MatchType,
    Severity,
    ResolutionAction,
    Discrepancy,
    Participant,
    Resolution,
    ReconciliationMatch,
    ReconciliationSummary,
    ReconciliationReport,
    create_reconciliation_source,
)
from .rules import (
    RecordField,
    ConditionOperator,
    RuleCondition,
    ReconciliationRule,
    get_default_rules,
)

__all__ = [
    "Record",
    "ConferredItem",
    "ConferenceEvent",
    "ConferenceOutcome",
    "parse_amount",
    "to_money",
    "normalize_identifier",
    "ReconciliationSource",
    "SourceType",
    "MatchType",
    "Severity",
    "ResolutionAction",
    "Discrepancy",
    "Participant",
    "Resolution",
    "ReconciliationMatch",
    "ReconciliationSummary",
    "ReconciliationReport",
    "create_reconciliation_source",
    "RecordField",
    "ConditionOperator",
    "RuleCondition",
    "ReconciliationRule",
    "get_default_rules",
]
