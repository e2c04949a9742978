"""
Evaluation of custom reconciliation rules against a candidate pair.

A satisfied condition adds a fixed bonus; rules never short-circuit each
other and are applied in descending priority.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterable, Union
import logging
import re

from pydantic import ValidationError as PydanticValidationError

from ..models.reconciliation import Discrepancy
from ..models.record import Record
from ..models.rules import ConditionOperator, ReconciliationRule, RuleCondition
from ..utils.exceptions import RuleDefinitionError
from .scoring import RULE_CONDITION_BONUS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleOutcome:
    """Contribution of one rule to a pair's score."""

    bonus: Decimal
    matching_fields: tuple[str, ...]
    discrepancies: tuple[Discrepancy, ...]


def _as_text(value: Any) -> str:
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    return str(value)


def _equals(condition: RuleCondition, v1: Any, v2: Any) -> bool:
    return v1 == v2


def _contains(condition: RuleCondition, v1: Any, v2: Any) -> bool:
    if v1 is None or v2 is None:
        return False
    t1, t2 = _as_text(v1).casefold(), _as_text(v2).casefold()
    if condition.value:
        needle = condition.value.casefold()
        return needle in t1 and needle in t2
    if not t1 or not t2:
        return False
    return t1 in t2 or t2 in t1


def _range(condition: RuleCondition, v1: Any, v2: Any) -> bool:
    if v1 is None or v2 is None:
        return False
    if isinstance(v1, date):
        distance = Decimal(abs((v1 - v2).days))
    else:
        distance = abs(v1 - v2)
    return distance <= condition.tolerance


def _pattern(condition: RuleCondition, v1: Any, v2: Any) -> bool:
    if v1 is None or v2 is None:
        return False
    return (
        re.search(condition.pattern, _as_text(v1)) is not None
        and re.search(condition.pattern, _as_text(v2)) is not None
    )


_EVALUATORS: dict[ConditionOperator, Callable[[RuleCondition, Any, Any], bool]] = {
    ConditionOperator.EQUALS: _equals,
    ConditionOperator.CONTAINS: _contains,
    ConditionOperator.RANGE: _range,
    ConditionOperator.PATTERN: _pattern,
}

_missing = set(ConditionOperator) - set(_EVALUATORS)
if _missing:
    raise RuntimeError(f"No evaluator for operators: {sorted(op.value for op in _missing)}")


def evaluate_condition(condition: RuleCondition, record_a: Record, record_b: Record) -> bool:
    """Check one condition against both records."""
    v1 = getattr(record_a, condition.field.value)
    v2 = getattr(record_b, condition.field.value)
    return _EVALUATORS[condition.operator](condition, v1, v2)


def apply_rule(rule: ReconciliationRule, record_a: Record, record_b: Record) -> RuleOutcome:
    """
    Evaluate every condition of a rule.

    Returns:
        RuleOutcome with a bonus per satisfied condition and discrepancies for
        unsatisfied conditions flagged with ``flag_on_mismatch``
    """
    bonus = Decimal("0")
    fields: list[str] = []
    discrepancies: list[Discrepancy] = []

    for condition in rule.conditions:
        field_name = condition.field.value
        if evaluate_condition(condition, record_a, record_b):
            bonus += RULE_CONDITION_BONUS
            fields.append(field_name)
        elif condition.flag_on_mismatch:
            discrepancies.append(
                Discrepancy(
                    field=field_name,
                    values_by_source={
                        record_a.source_id: getattr(record_a, field_name),
                        record_b.source_id: getattr(record_b, field_name),
                    },
                    severity=condition.severity,
                    reason=(
                        f"Rule '{rule.name}': {field_name} "
                        f"{condition.operator.value} not satisfied"
                    ),
                )
            )

    return RuleOutcome(
        bonus=bonus,
        matching_fields=tuple(fields),
        discrepancies=tuple(discrepancies),
    )


def prepare_rules(
    rules: Iterable[Union[ReconciliationRule, dict[str, Any]]],
) -> list[ReconciliationRule]:
    """
    Validate rule definitions and order enabled rules by descending priority.

    Raises:
        RuleDefinitionError: If a rule definition is malformed
    """
    prepared: list[ReconciliationRule] = []
    for index, rule in enumerate(rules):
        if isinstance(rule, ReconciliationRule):
            prepared.append(rule)
            continue
        if not isinstance(rule, dict):
            raise RuleDefinitionError(f"Rule #{index} must be a mapping, got {type(rule).__name__}")
        try:
            prepared.append(ReconciliationRule.model_validate(rule))
        except PydanticValidationError as e:
            raise RuleDefinitionError(f"Invalid rule #{index} ({rule.get('id', '?')}): {e}") from e

    active = [r for r in prepared if r.enabled]
    active.sort(key=lambda r: -r.priority)
    logger.debug(f"Active rules: {[r.id for r in active]}")
    return active
