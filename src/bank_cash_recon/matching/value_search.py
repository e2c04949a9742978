"""
Exact value search used when an operator types an amount to confer.

The search is a pure query: it never reserves records. Confirmation and
ledger mutation belong to the caller (see ``conference.session``).
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional
import logging

from ..models.record import Record, parse_amount
from ..utils.exceptions import InvalidInputError

if TYPE_CHECKING:
    from ..conference.ledger import DedupLedger

logger = logging.getLogger(__name__)


class SearchOutcome(Enum):
    """Result shape of a value search."""

    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    ALREADY_CONSUMED = "already_consumed"
    MATCHED = "matched"  # exactly one candidate
    AMBIGUOUS = "ambiguous"  # caller must pick one


@dataclass(frozen=True)
class SearchResult:
    """Outcome of ``ValueSearch.search``."""

    query_text: str
    outcome: SearchOutcome
    query_value: Optional[Decimal] = None
    matches: tuple[Record, ...] = ()

    # Records that would have matched but are already conferred
    already_conferred: tuple[Record, ...] = ()

    message: str = ""

    @property
    def has_matches(self) -> bool:
        return bool(self.matches)

    @property
    def is_unique(self) -> bool:
        """Exactly one candidate, eligible for automatic confirmation."""
        return self.outcome == SearchOutcome.MATCHED


class ValueSearch:
    """
    Find records whose absolute amount equals a typed value.

    Sign is ignored: the operator matches magnitudes. Records reserved in the
    ledger are never returned as candidates.
    """

    def __init__(self, ledger: Optional["DedupLedger"] = None):
        """
        Args:
            ledger: Dedup ledger used to exclude conferred records (optional)
        """
        self.ledger = ledger

    def search(self, query_text: str, records: Iterable[Record]) -> SearchResult:
        """
        Search a record set for an exact magnitude match.

        Args:
            query_text: Value as typed ("150,00", "R$ 1.234,56", "150.00")
            records: Candidate records

        Returns:
            SearchResult; invalid input is reported as INVALID_INPUT, never raised
        """
        try:
            query_value = parse_amount(query_text)
        except InvalidInputError as e:
            logger.debug(f"Rejected search input {query_text!r}: {e}")
            return SearchResult(
                query_text=str(query_text),
                outcome=SearchOutcome.INVALID_INPUT,
                message=str(e),
            )

        matches: list[Record] = []
        reserved: list[Record] = []
        for record in records:
            if record.magnitude != query_value:
                continue
            if self.ledger is not None and self.ledger.is_reserved(record.ref):
                reserved.append(record)
            else:
                matches.append(record)

        if matches:
            outcome = SearchOutcome.MATCHED if len(matches) == 1 else SearchOutcome.AMBIGUOUS
            message = f"{len(matches)} record(s) with value {query_value}"
        elif reserved:
            outcome = SearchOutcome.ALREADY_CONSUMED
            message = f"Value {query_value} was already conferred"
        else:
            outcome = SearchOutcome.NOT_FOUND
            message = f"No record with value {query_value}"
            logger.info(f"Value not found: {query_value}")

        logger.debug(f"Search {query_text!r}: {outcome.value} ({len(matches)} candidates)")

        return SearchResult(
            query_text=str(query_text),
            outcome=outcome,
            query_value=query_value,
            matches=tuple(matches),
            already_conferred=tuple(reserved),
            message=message,
        )
