"""Normalized transaction records and conference (confirmation) data."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Optional, Union
import re
import uuid

from ..utils.exceptions import InvalidInputError, ValidationError

CENT = Decimal("0.01")

# Upper bound for the free-form source description kept on a record
MAX_TEXT_LENGTH = 500

_CURRENCY_RE = re.compile(r"(?i)r\$|us\$|\$|brl|\s")
_AMOUNT_CHARS_RE = re.compile(r"[0-9.,]*[0-9][0-9.,]*")
_NON_DIGIT_RE = re.compile(r"\D")

AmountLike = Union[Decimal, int, float, str]


def _strip_grouping(integer_part: str, separator: str, original: str) -> str:
    """Remove thousands separators, checking the 3-digit grouping."""
    groups = integer_part.split(separator)
    if not groups[0] or len(groups[0]) > 3 or any(len(g) != 3 for g in groups[1:]):
        raise InvalidInputError(f"Invalid value: {original!r}")
    return "".join(groups)


def _normalize_separators(cleaned: str, original: str) -> str:
    """Rewrite a digits/dots/commas string into Decimal notation."""
    last_dot = cleaned.rfind(".")
    last_comma = cleaned.rfind(",")

    if last_dot >= 0 and last_comma >= 0:
        # Both present: the right-most one is the decimal separator
        decimal_sep = "." if last_dot > last_comma else ","
        thousands_sep = "," if decimal_sep == "." else "."
        integer_part, _, fraction = cleaned.rpartition(decimal_sep)
        if decimal_sep in integer_part:
            raise InvalidInputError(f"Invalid value: {original!r}")
        integer_part = _strip_grouping(integer_part, thousands_sep, original)
        return f"{integer_part}.{fraction}"

    separator = "." if last_dot >= 0 else "," if last_comma >= 0 else None
    if separator is None:
        return cleaned

    if cleaned.count(separator) == 1:
        integer_part, fraction = cleaned.split(separator)
        return f"{integer_part or '0'}.{fraction}"

    # Repeated single separator: thousands grouping only ("1.234.567")
    return _strip_grouping(cleaned, separator, original)


def parse_amount(text: Any, allow_negative: bool = False) -> Decimal:
    """
    Parse a typed monetary value into a two-decimal Decimal.

    Accepts "." or "," as the decimal separator, Brazilian formats such as
    "R$ 1.234,56", and plain numbers.

    Args:
        text: Raw value typed by the operator
        allow_negative: Whether a leading minus sign is accepted

    Returns:
        Amount rounded half away from zero to two decimals

    Raises:
        InvalidInputError: If the value is empty or not numeric
    """
    if text is None:
        raise InvalidInputError("Empty value")

    original = str(text)
    cleaned = _CURRENCY_RE.sub("", original)
    if not cleaned:
        raise InvalidInputError("Empty value")

    negative = cleaned.startswith("-")
    if negative:
        cleaned = cleaned[1:]

    if not _AMOUNT_CHARS_RE.fullmatch(cleaned):
        raise InvalidInputError(f"Invalid value: {original!r}")

    try:
        value = Decimal(_normalize_separators(cleaned, original))
    except InvalidOperation as e:
        raise InvalidInputError(f"Invalid value: {original!r}") from e

    if negative:
        if not allow_negative:
            raise InvalidInputError(f"Negative values are not accepted: {original!r}")
        value = -value

    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: AmountLike) -> Decimal:
    """
    Convert any supported amount representation to the canonical Decimal.

    This is the only place where floats and strings become amounts.
    """
    if isinstance(value, bool):
        raise InvalidInputError(f"Invalid amount: {value!r}")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        amount = Decimal(repr(value))
    elif isinstance(value, str):
        return parse_amount(value, allow_negative=True)
    else:
        raise InvalidInputError(f"Invalid amount: {value!r}")

    if not amount.is_finite():
        raise InvalidInputError(f"Invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_identifier(value: Optional[str]) -> Optional[str]:
    """Reduce a CPF/CNPJ (masked or formatted) to its digits."""
    if value is None:
        return None
    digits = _NON_DIGIT_RE.sub("", str(value))
    return digits or None


@dataclass(frozen=True)
class Record:
    """
    One normalized transaction entry from a single source.

    Amounts are signed (credits positive, debits negative) and always held
    with two decimal places.
    """

    # Stable identifier, unique within its source
    record_id: str

    # Source or batch that produced the record
    source_id: str

    # Calendar date, no time component
    date: date

    amount: Decimal

    # Open categorical tag (PIX, DINHEIRO, CARTAO, ...)
    payment_type: str = ""

    # CPF/CNPJ, digits only
    identifier: Optional[str] = None

    original_text: str = ""

    def __post_init__(self) -> None:
        if not self.record_id:
            raise ValidationError("Record requires a record_id")
        if not self.source_id:
            raise ValidationError(f"Record {self.record_id} requires a source_id")

        if isinstance(self.date, datetime):
            object.__setattr__(self, "date", self.date.date())
        elif not isinstance(self.date, date):
            raise ValidationError(f"Record {self.record_id}: invalid date {self.date!r}")

        object.__setattr__(self, "amount", to_money(self.amount))
        object.__setattr__(self, "identifier", normalize_identifier(self.identifier))
        object.__setattr__(self, "payment_type", (self.payment_type or "").strip())

        text = " ".join((self.original_text or "").split())
        object.__setattr__(self, "original_text", text[:MAX_TEXT_LENGTH])

    @property
    def ref(self) -> str:
        """Globally unique reference (source and record id)."""
        return f"{self.source_id}:{self.record_id}"

    @property
    def magnitude(self) -> Decimal:
        return abs(self.amount)

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "source_id": self.source_id,
            "date": self.date.isoformat(),
            "payment_type": self.payment_type,
            "identifier": self.identifier,
            "amount": str(self.amount),
            "original_text": self.original_text,
        }


class ConferenceOutcome(Enum):
    """Outcome of a conference attempt, recorded in the audit trail."""

    MATCHED = "matched"
    NOT_FOUND = "not_found"
    ALREADY_CONFERRED = "already_conferred"


@dataclass(frozen=True)
class ConferredItem:
    """A record confirmed against an operator-supplied value."""

    record: Record
    conferred_at: datetime
    conferred_id: str

    @classmethod
    def create(cls, record: Record, conferred_at: Optional[datetime] = None) -> "ConferredItem":
        return cls(
            record=record,
            conferred_at=conferred_at or datetime.now(),
            conferred_id=uuid.uuid4().hex,
        )

    def to_dict(self) -> dict[str, Any]:
        data = self.record.to_dict()
        data["conferred_at"] = self.conferred_at.isoformat()
        data["conferred_id"] = self.conferred_id
        return data


@dataclass(frozen=True)
class ConferenceEvent:
    """
    Plain audit event handed to the persistence collaborator.

    Either ``record_ref`` (a confirmation attempt on a known record) or
    ``query_value`` (a typed value with no match) is set.
    """

    outcome: ConferenceOutcome
    timestamp: datetime = field(default_factory=datetime.now)
    record_ref: Optional[str] = None
    query_value: Optional[str] = None
    amount: Optional[Decimal] = None
    conferred_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "timestamp": self.timestamp.isoformat(),
            "record_ref": self.record_ref,
            "query_value": self.query_value,
            "amount": str(self.amount) if self.amount is not None else None,
            "conferred_id": self.conferred_id,
        }
