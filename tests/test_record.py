from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal

import pytest

from bank_cash_recon.models.record import (
    ConferenceEvent,
    ConferenceOutcome,
    ConferredItem,
    Record,
    normalize_identifier,
    parse_amount,
    to_money,
)
from bank_cash_recon.utils.exceptions import InvalidInputError, ValidationError
from tests.conftest import _make_record


class TestParseAmount:
    """Tests for parse_amount: typed values to two-decimal amounts."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("150,00", "150.00"),
            ("150.00", "150.00"),
            ("150", "150.00"),
            ("R$ 1.234,56", "1234.56"),
            ("1,234.56", "1234.56"),
            ("1.234.567", "1234567.00"),
            (" 80,5 ", "80.50"),
            (",50", "0.50"),
        ],
    )
    def test_accepted_formats(self, text, expected):
        """Decimal comma, decimal point and thousands grouping all parse."""
        assert parse_amount(text) == Decimal(expected)

    def test_rounds_half_up(self):
        """Extra decimals are rounded half away from zero."""
        assert parse_amount("10.005") == Decimal("10.01")
        assert parse_amount("10,004") == Decimal("10.00")

    @pytest.mark.parametrize("text", ["", "   ", "R$", "abc", "12a", "1.2.3,4,5", None])
    def test_rejects_invalid(self, text):
        """Empty and non-numeric input raises InvalidInputError."""
        with pytest.raises(InvalidInputError):
            parse_amount(text)

    def test_rejects_bad_grouping(self):
        """Thousands groups must have three digits."""
        with pytest.raises(InvalidInputError):
            parse_amount("1.23,45")

    def test_negative_only_when_allowed(self):
        """A leading minus is rejected for typed queries."""
        with pytest.raises(InvalidInputError, match="Negative"):
            parse_amount("-10,00")
        assert parse_amount("-10,00", allow_negative=True) == Decimal("-10.00")


class TestToMoney:
    def test_float_uses_shortest_repr(self):
        """Floats convert through their repr, not their binary value."""
        assert to_money(0.1 + 0.2) == Decimal("0.30")
        assert to_money(150.005) == Decimal("150.01")

    def test_int_and_decimal(self):
        assert to_money(150) == Decimal("150.00")
        assert to_money(Decimal("-3.333")) == Decimal("-3.33")

    def test_string_keeps_sign(self):
        assert to_money("-1.234,50") == Decimal("-1234.50")

    @pytest.mark.parametrize("value", [True, None, float("nan"), Decimal("Infinity"), [1]])
    def test_rejects_non_amounts(self, value):
        with pytest.raises(InvalidInputError):
            to_money(value)


class TestRecord:
    """Tests for Record normalization at construction."""

    def test_normalizes_fields(self):
        """Amount, identifier, date and text are canonicalised once."""
        record = Record(
            record_id="1",
            source_id="bank",
            date=datetime(2024, 1, 15, 10, 30),
            amount="150,00",
            payment_type="  PIX ",
            identifier="123.456.789-01",
            original_text="  PIX   recebido\n de  cliente ",
        )

        assert record.amount == Decimal("150.00")
        assert record.date == date(2024, 1, 15)
        assert record.identifier == "12345678901"
        assert record.payment_type == "PIX"
        assert record.original_text == "PIX recebido de cliente"

    def test_ref_and_magnitude(self):
        record = _make_record(record_id="7", source_id="caixa", amount=Decimal("-42.10"))
        assert record.ref == "caixa:7"
        assert record.magnitude == Decimal("42.10")

    def test_text_is_truncated(self):
        record = _make_record(original_text="x" * 600)
        assert len(record.original_text) == 500

    def test_requires_ids(self):
        with pytest.raises(ValidationError):
            _make_record(record_id="")
        with pytest.raises(ValidationError):
            _make_record(source_id="")

    def test_rejects_invalid_date(self):
        with pytest.raises(ValidationError, match="invalid date"):
            _make_record(date="2024-01-15")

    def test_replace_renormalizes(self):
        """dataclasses.replace runs the same normalization."""
        record = replace(_make_record(), amount="99,999")
        assert record.amount == Decimal("100.00")

    def test_to_dict_is_plain(self):
        data = _make_record(identifier="12345678901").to_dict()
        assert data == {
            "record_id": "r1",
            "source_id": "bank",
            "date": "2024-01-15",
            "payment_type": "",
            "identifier": "12345678901",
            "amount": "150.00",
            "original_text": "",
        }


class TestConferenceModels:
    def test_conferred_item_ids_are_unique(self):
        record = _make_record()
        first = ConferredItem.create(record)
        second = ConferredItem.create(record)
        assert first.conferred_id != second.conferred_id
        assert first.to_dict()["conferred_id"] == first.conferred_id

    def test_event_to_dict(self):
        event = ConferenceEvent(
            outcome=ConferenceOutcome.NOT_FOUND,
            query_value="999,00",
            amount=Decimal("999.00"),
        )
        data = event.to_dict()
        assert data["outcome"] == "not_found"
        assert data["amount"] == "999.00"
        assert data["record_ref"] is None


def test_normalize_identifier():
    assert normalize_identifier("12.345.678/0001-90") == "12345678000190"
    assert normalize_identifier("***.456.789-**") == "456789"
    assert normalize_identifier("---") is None
    assert normalize_identifier(None) is None
