"""
Custom reconciliation rules.

Rules are data: a list of field-level conditions with a closed set of
operators. Evaluation lives in ``matching.rules``.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional
import re

from pydantic import BaseModel, Field, model_validator

from .reconciliation import Severity


class RecordField(Enum):
    """Record fields a condition may inspect."""

    DATE = "date"
    PAYMENT_TYPE = "payment_type"
    IDENTIFIER = "identifier"
    AMOUNT = "amount"
    ORIGINAL_TEXT = "original_text"


class ConditionOperator(Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    RANGE = "range"
    PATTERN = "pattern"


# Fields with a numeric distance (amount in currency units, date in days)
RANGE_FIELDS = frozenset({RecordField.AMOUNT, RecordField.DATE})

DEFAULT_RANGE_TOLERANCE = Decimal("0.1")


class RuleCondition(BaseModel):
    """
    One condition, evaluated against both candidate records.

    - equals: the two field values are equal
    - contains: both values contain ``value`` (case-insensitive), or, with no
      ``value``, one value contains the other
    - range: the values differ by at most ``tolerance``
    - pattern: both values match the ``pattern`` regular expression
    """

    field: RecordField
    operator: ConditionOperator
    value: Optional[str] = None
    tolerance: Optional[Decimal] = None
    pattern: Optional[str] = None

    # Register a discrepancy when the condition is not satisfied
    flag_on_mismatch: bool = False
    severity: Severity = Severity.LOW

    @model_validator(mode="after")
    def _check_operator_arguments(self) -> "RuleCondition":
        if self.operator == ConditionOperator.RANGE:
            if self.field not in RANGE_FIELDS:
                raise ValueError(f"range is not supported on field {self.field.value!r}")
            if self.tolerance is None:
                self.tolerance = DEFAULT_RANGE_TOLERANCE
            if self.tolerance < 0:
                raise ValueError("range tolerance must not be negative")
        elif self.operator == ConditionOperator.PATTERN:
            if not self.pattern:
                raise ValueError("pattern condition requires a pattern")
            try:
                re.compile(self.pattern)
            except re.error as e:
                raise ValueError(f"invalid pattern {self.pattern!r}: {e}") from e
        return self


class ReconciliationRule(BaseModel):
    """A named, prioritised group of conditions."""

    id: str
    name: str
    description: str = ""
    enabled: bool = True

    # Higher priority rules are evaluated first
    priority: int = 0

    conditions: list[RuleCondition] = Field(min_length=1)


def get_default_rules() -> list[ReconciliationRule]:
    """Built-in rules: PIX transactions with the same value."""
    return [
        ReconciliationRule(
            id="pix_matching",
            name="PIX Transaction Matching",
            description="Match PIX transactions based on value",
            priority=10,
            conditions=[
                RuleCondition(
                    field=RecordField.PAYMENT_TYPE,
                    operator=ConditionOperator.CONTAINS,
                    value="PIX",
                ),
                RuleCondition(
                    field=RecordField.AMOUNT,
                    operator=ConditionOperator.RANGE,
                    tolerance=Decimal("0.01"),
                ),
            ],
        )
    ]
