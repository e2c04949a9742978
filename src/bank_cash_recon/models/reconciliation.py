"""Data models for cross-source reconciliation runs and their reports."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional, Union
import logging

from .record import Record
from ..utils.exceptions import ValidationError

logger = logging.getLogger(__name__)


class SourceType(Enum):
    """Kind of system a reconciliation source comes from."""

    BANK_STATEMENT = "bank_statement"
    CASH_REGISTER = "cash_register"
    POS_SYSTEM = "pos_system"
    ACCOUNTING = "accounting"
    CUSTOM = "custom"


class MatchType(Enum):
    EXACT = "exact"
    APPROXIMATE = "approximate"
    PATTERN = "pattern"
    MANUAL = "manual"


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ResolutionAction(Enum):
    """Operator decision attached to a proposed match."""

    ACCEPT = "accept"
    REJECT = "reject"
    MERGE = "merge"
    INVESTIGATE = "investigate"


@dataclass
class ReconciliationSource:
    """
    An independently produced record set (bank statement, cash register, ...).

    Every record is stamped with this source's id; record ids must be unique
    within the source.
    """

    id: str
    name: str
    records: list[Record] = field(default_factory=list)
    type: SourceType = SourceType.CUSTOM

    # Importance weight for conflict resolution, informational only
    weight: Decimal = Decimal("1")

    last_updated: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationError("Reconciliation source requires an id")

        stamped: list[Record] = []
        seen: set[str] = set()
        for record in self.records:
            if record.source_id != self.id:
                record = replace(record, source_id=self.id)
            if record.record_id in seen:
                raise ValidationError(
                    f"Duplicate record_id {record.record_id!r} in source {self.id!r}"
                )
            seen.add(record.record_id)
            stamped.append(record)
        self.records = stamped

    @property
    def total_value(self) -> Decimal:
        return sum((r.amount for r in self.records), Decimal("0"))


def create_reconciliation_source(
    source_id: str,
    name: str,
    rows: Iterable[Union[Record, dict[str, Any]]],
    source_type: SourceType = SourceType.BANK_STATEMENT,
) -> ReconciliationSource:
    """
    Build a source from parsed rows.

    Rows may be ready-made records or dicts with ``date``, ``amount`` and the
    optional record fields; missing record ids become ``<source_id>_<index>``.
    """
    records: list[Record] = []
    for index, row in enumerate(rows):
        if isinstance(row, Record):
            records.append(row)
            continue
        records.append(
            Record(
                record_id=str(row.get("record_id") or f"{source_id}_{index}"),
                source_id=source_id,
                date=row["date"],
                amount=row["amount"],
                payment_type=row.get("payment_type", ""),
                identifier=row.get("identifier"),
                original_text=row.get("original_text", ""),
            )
        )

    return ReconciliationSource(id=source_id, name=name, records=records, type=source_type)


@dataclass(frozen=True)
class Discrepancy:
    """A field-level disagreement between records otherwise considered a match."""

    field: str
    values_by_source: dict[str, Any]
    severity: Severity
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "values_by_source": {
                k: v.isoformat() if isinstance(v, date) else str(v)
                for k, v in self.values_by_source.items()
            },
            "severity": self.severity.value,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class Participant:
    """One record taking part in a match."""

    source_id: str
    record: Record
    matching_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class Resolution:
    action: ResolutionAction
    resolved_at: datetime
    resolved_by: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class ReconciliationMatch:
    """
    A proposed correspondence between records from different sources.

    Immutable once produced, except for the resolution an operator attaches
    through ``resolve``.
    """

    id: str
    confidence: Decimal
    match_type: MatchType
    participants: tuple[Participant, ...]
    discrepancies: tuple[Discrepancy, ...] = ()
    created_at: datetime = field(default_factory=datetime.now)
    resolution: Optional[Resolution] = None

    def __post_init__(self) -> None:
        if len(self.participants) < 2:
            raise ValidationError(f"Match {self.id} needs at least two participants")
        source_ids = [p.source_id for p in self.participants]
        if len(set(source_ids)) != len(source_ids):
            raise ValidationError(f"Match {self.id} pairs records from the same source")
        if not Decimal("0") <= self.confidence <= Decimal("1"):
            raise ValidationError(f"Match {self.id} confidence out of range: {self.confidence}")

    @property
    def record_refs(self) -> tuple[str, ...]:
        return tuple(p.record.ref for p in self.participants)

    @property
    def has_discrepancies(self) -> bool:
        return bool(self.discrepancies)

    @property
    def is_resolved(self) -> bool:
        return self.resolution is not None

    def resolve(
        self,
        action: ResolutionAction,
        resolved_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Resolution:
        """Attach (or replace) the operator's decision on this match."""
        self.resolution = Resolution(
            action=action,
            resolved_at=datetime.now(),
            resolved_by=resolved_by,
            notes=notes,
        )
        logger.info(f"Match {self.id} resolved as {action.value} by {resolved_by or 'unknown'}")
        return self.resolution

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "confidence": str(self.confidence),
            "match_type": self.match_type.value,
            "participants": [
                {
                    "source_id": p.source_id,
                    "record": p.record.to_dict(),
                    "matching_fields": list(p.matching_fields),
                }
                for p in self.participants
            ],
            "discrepancies": [d.to_dict() for d in self.discrepancies],
            "created_at": self.created_at.isoformat(),
            "resolution": (
                {
                    "action": self.resolution.action.value,
                    "resolved_at": self.resolution.resolved_at.isoformat(),
                    "resolved_by": self.resolution.resolved_by,
                    "notes": self.resolution.notes,
                }
                if self.resolution
                else None
            ),
        }


@dataclass(frozen=True)
class ReconciliationSummary:
    """Aggregate statistics of one reconciliation run."""

    total_records: int
    matched_records: int
    unmatched_records: int
    conflicting_records: int

    total_value: Decimal
    matched_value: Decimal
    unmatched_value: Decimal

    # Matches per confidence band (high >= 0.9, medium >= 0.7, low >= 0.3)
    confidence_distribution: dict[str, int] = field(default_factory=dict)

    matches_by_type: dict[str, int] = field(default_factory=dict)

    @property
    def match_rate(self) -> float:
        """Percentage of records taking part in at least one match."""
        if self.total_records == 0:
            return 0.0
        return (self.matched_records / self.total_records) * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_records": self.total_records,
            "matched_records": self.matched_records,
            "unmatched_records": self.unmatched_records,
            "conflicting_records": self.conflicting_records,
            "total_value": str(self.total_value),
            "matched_value": str(self.matched_value),
            "unmatched_value": str(self.unmatched_value),
            "confidence_distribution": dict(self.confidence_distribution),
            "matches_by_type": dict(self.matches_by_type),
            "match_rate": round(self.match_rate, 2),
        }


@dataclass(frozen=True)
class ReconciliationReport:
    """Read-only result of a ``reconcile()`` run."""

    id: str
    generated_at: datetime
    period_start: Optional[date]
    period_end: Optional[date]
    source_record_counts: dict[str, int]
    matches: tuple[ReconciliationMatch, ...]
    unmatched: tuple[Record, ...]
    summary: ReconciliationSummary
    processing_time_seconds: float = 0.0

    def get_match(self, match_id: str) -> Optional[ReconciliationMatch]:
        return next((m for m in self.matches if m.id == match_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "generated_at": self.generated_at.isoformat(),
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "source_record_counts": dict(self.source_record_counts),
            "summary": self.summary.to_dict(),
            "matches": [m.to_dict() for m in self.matches],
            "unmatched": [r.to_dict() for r in self.unmatched],
            "processing_time_seconds": round(self.processing_time_seconds, 4),
        }
