from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from bank_cash_recon.matching.rules import apply_rule, evaluate_condition, prepare_rules
from bank_cash_recon.models.reconciliation import Severity
from bank_cash_recon.models.rules import (
    ConditionOperator,
    RecordField,
    ReconciliationRule,
    RuleCondition,
    get_default_rules,
)
from bank_cash_recon.utils.exceptions import ConfigurationError, RuleDefinitionError
from tests.conftest import _make_record


def _pair(**overrides):
    a = _make_record(record_id="a", source_id="bank", **overrides.get("a", {}))
    b = _make_record(record_id="b", source_id="caixa", **overrides.get("b", {}))
    return a, b


class TestRuleCondition:
    """Tests for condition validation."""

    def test_range_defaults_tolerance(self):
        condition = RuleCondition(field="amount", operator="range")
        assert condition.tolerance == Decimal("0.1")
        assert condition.operator is ConditionOperator.RANGE

    def test_range_only_on_numeric_fields(self):
        with pytest.raises(PydanticValidationError, match="range is not supported"):
            RuleCondition(field="payment_type", operator="range")

    def test_negative_tolerance(self):
        with pytest.raises(PydanticValidationError):
            RuleCondition(field="amount", operator="range", tolerance=Decimal("-1"))

    def test_pattern_required_and_compiled(self):
        with pytest.raises(PydanticValidationError):
            RuleCondition(field="original_text", operator="pattern")
        with pytest.raises(PydanticValidationError, match="invalid pattern"):
            RuleCondition(field="original_text", operator="pattern", pattern="(")

    def test_unknown_operator(self):
        with pytest.raises(PydanticValidationError):
            RuleCondition(field="amount", operator="fuzzy")

    def test_rule_needs_conditions(self):
        with pytest.raises(PydanticValidationError):
            ReconciliationRule(id="empty", name="Empty", conditions=[])


class TestEvaluateCondition:
    """One test per operator."""

    def test_equals(self):
        condition = RuleCondition(field=RecordField.PAYMENT_TYPE, operator=ConditionOperator.EQUALS)
        a, b = _pair(a={"payment_type": "PIX"}, b={"payment_type": "PIX"})
        assert evaluate_condition(condition, a, b)
        a, b = _pair(a={"payment_type": "PIX"}, b={"payment_type": "pix"})
        assert not evaluate_condition(condition, a, b)

    def test_contains_with_value(self):
        condition = RuleCondition(field="payment_type", operator="contains", value="pix")
        a, b = _pair(a={"payment_type": "PIX RECEBIDO"}, b={"payment_type": "Pix"})
        assert evaluate_condition(condition, a, b)
        a, b = _pair(a={"payment_type": "PIX"}, b={"payment_type": "DINHEIRO"})
        assert not evaluate_condition(condition, a, b)

    def test_contains_without_value(self):
        condition = RuleCondition(field="original_text", operator="contains")
        a, b = _pair(a={"original_text": "Venda 123"}, b={"original_text": "venda"})
        assert evaluate_condition(condition, a, b)
        a, b = _pair(a={"original_text": "Venda"}, b={"original_text": ""})
        assert not evaluate_condition(condition, a, b)

    def test_range_on_amount(self):
        condition = RuleCondition(field="amount", operator="range", tolerance=Decimal("0.01"))
        a, b = _pair(a={"amount": Decimal("10.00")}, b={"amount": Decimal("10.01")})
        assert evaluate_condition(condition, a, b)
        a, b = _pair(a={"amount": Decimal("10.00")}, b={"amount": Decimal("10.02")})
        assert not evaluate_condition(condition, a, b)

    def test_range_on_date_in_days(self):
        condition = RuleCondition(field="date", operator="range", tolerance=Decimal("2"))
        a, b = _pair(a={"date": date(2024, 1, 15)}, b={"date": date(2024, 1, 17)})
        assert evaluate_condition(condition, a, b)
        a, b = _pair(a={"date": date(2024, 1, 15)}, b={"date": date(2024, 1, 18)})
        assert not evaluate_condition(condition, a, b)

    def test_pattern(self):
        condition = RuleCondition(field="original_text", operator="pattern", pattern=r"NF\s*\d+")
        a, b = _pair(a={"original_text": "Venda NF 123"}, b={"original_text": "NF99"})
        assert evaluate_condition(condition, a, b)
        a, b = _pair(a={"original_text": "Venda NF 123"}, b={"original_text": "Venda"})
        assert not evaluate_condition(condition, a, b)

    def test_missing_identifier_never_matches(self):
        condition = RuleCondition(field="identifier", operator="pattern", pattern=r"\d+")
        a, b = _pair(a={"identifier": "123"})
        assert not evaluate_condition(condition, a, b)


class TestApplyRule:
    def test_default_pix_rule(self):
        rule = get_default_rules()[0]
        a, b = _pair(a={"payment_type": "PIX"}, b={"payment_type": "PIX"})

        outcome = apply_rule(rule, a, b)

        assert outcome.bonus == Decimal("0.10")
        assert outcome.matching_fields == ("payment_type", "amount")
        assert outcome.discrepancies == ()

    def test_flag_on_mismatch(self):
        rule = ReconciliationRule(
            id="same_type",
            name="Same payment type",
            conditions=[
                RuleCondition(
                    field="payment_type",
                    operator="equals",
                    flag_on_mismatch=True,
                    severity="high",
                )
            ],
        )
        a, b = _pair(a={"payment_type": "PIX"}, b={"payment_type": "DINHEIRO"})

        outcome = apply_rule(rule, a, b)

        assert outcome.bonus == Decimal("0")
        assert len(outcome.discrepancies) == 1
        discrepancy = outcome.discrepancies[0]
        assert discrepancy.field == "payment_type"
        assert discrepancy.severity == Severity.HIGH
        assert discrepancy.values_by_source == {"bank": "PIX", "caixa": "DINHEIRO"}


class TestPrepareRules:
    def test_orders_by_priority_and_skips_disabled(self):
        rules = prepare_rules(
            [
                {"id": "low", "name": "Low", "priority": 1, "conditions": [{"field": "date", "operator": "equals"}]},
                {"id": "off", "name": "Off", "enabled": False, "conditions": [{"field": "date", "operator": "equals"}]},
                {"id": "high", "name": "High", "priority": 5, "conditions": [{"field": "amount", "operator": "equals"}]},
            ]
        )
        assert [r.id for r in rules] == ["high", "low"]

    def test_malformed_rule_raises(self):
        with pytest.raises(RuleDefinitionError, match="bad"):
            prepare_rules(
                [{"id": "bad", "name": "Bad", "conditions": [{"field": "payment_type", "operator": "range"}]}]
            )

    def test_non_mapping_rule(self):
        with pytest.raises(RuleDefinitionError):
            prepare_rules(["not a rule"])

    def test_is_a_configuration_error(self):
        assert issubclass(RuleDefinitionError, ConfigurationError)
