"""
Conference session: confirming typed values against parsed bank rows.

The session is the only place where a ledger reservation and a conferred
item are created or removed, always together.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional
import logging
import threading

from ..matching.value_search import SearchOutcome, ValueSearch
from ..models.record import ConferenceEvent, ConferenceOutcome, ConferredItem, Record
from ..utils.logging_config import get_audit_logger
from .ledger import DedupLedger

logger = logging.getLogger(__name__)
audit_logger = get_audit_logger()

EventSink = Callable[[ConferenceEvent], None]


@dataclass(frozen=True)
class ConferenceResult:
    """Outcome of ``confer`` or ``confirm``."""

    status: SearchOutcome
    query_text: Optional[str] = None
    item: Optional[ConferredItem] = None

    # Candidates awaiting operator selection (AMBIGUOUS)
    candidates: tuple[Record, ...] = ()

    event: Optional[ConferenceEvent] = None
    message: str = ""

    @property
    def confirmed(self) -> bool:
        return self.item is not None


@dataclass(frozen=True)
class DailySummary:
    """Conference figures for one operation date."""

    operation_date: date
    total_records: int
    conferred_count: int
    conferred_value: Decimal
    pending_count: int
    pending_value: Decimal
    not_found_count: int
    already_conferred_count: int
    generated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_date": self.operation_date.isoformat(),
            "total_records": self.total_records,
            "conferred_count": self.conferred_count,
            "conferred_value": str(self.conferred_value),
            "pending_count": self.pending_count,
            "pending_value": str(self.pending_value),
            "not_found_count": self.not_found_count,
            "already_conferred_count": self.already_conferred_count,
            "generated_at": self.generated_at.isoformat(),
        }


class ConferenceSession:
    """
    Confers operator-typed values against a record set.

    A single candidate is confirmed automatically; several candidates are
    returned for selection and confirmed with ``confirm``. Every confirmation
    and every "not found" produces a ConferenceEvent for the caller to persist.
    """

    def __init__(
        self,
        records: Iterable[Record] = (),
        ledger: Optional[DedupLedger] = None,
        event_sink: Optional[EventSink] = None,
        operation_date: Optional[date] = None,
    ):
        """
        Args:
            records: Parsed bank rows available for conference
            ledger: Dedup ledger (a fresh one per session when omitted)
            event_sink: Callback receiving every emitted event
            operation_date: Day the session belongs to (today by default)
        """
        self.records = list(records)
        self.ledger = ledger if ledger is not None else DedupLedger()
        self.event_sink = event_sink
        self.operation_date = operation_date or date.today()

        self._search = ValueSearch(self.ledger)
        self._items: dict[str, ConferredItem] = {}
        self._events: list[ConferenceEvent] = []
        self._lock = threading.RLock()

    @property
    def conferred_items(self) -> list[ConferredItem]:
        with self._lock:
            return list(self._items.values())

    @property
    def events(self) -> list[ConferenceEvent]:
        with self._lock:
            return list(self._events)

    def is_conferred(self, record: Record) -> bool:
        return self.ledger.is_reserved(record.ref)

    def confer(self, query_text: str) -> ConferenceResult:
        """
        Search a typed value and confirm it when exactly one record matches.

        Args:
            query_text: Value as typed by the operator

        Returns:
            ConferenceResult with status MATCHED, AMBIGUOUS, NOT_FOUND,
            ALREADY_CONSUMED or INVALID_INPUT
        """
        result = self._search.search(query_text, self.records)

        if result.outcome == SearchOutcome.INVALID_INPUT:
            return ConferenceResult(
                status=result.outcome, query_text=result.query_text, message=result.message
            )

        if result.outcome == SearchOutcome.NOT_FOUND:
            event = self._emit(
                ConferenceOutcome.NOT_FOUND,
                query_value=result.query_text,
                amount=result.query_value,
            )
            return ConferenceResult(
                status=result.outcome,
                query_text=result.query_text,
                event=event,
                message=result.message,
            )

        if result.outcome == SearchOutcome.ALREADY_CONSUMED:
            event = self._emit(
                ConferenceOutcome.ALREADY_CONFERRED,
                record_ref=result.already_conferred[0].ref,
                query_value=result.query_text,
                amount=result.query_value,
            )
            return ConferenceResult(
                status=result.outcome,
                query_text=result.query_text,
                event=event,
                message=result.message,
            )

        if result.outcome == SearchOutcome.AMBIGUOUS:
            logger.info(
                f"Value {result.query_value} matches {len(result.matches)} records, "
                f"awaiting selection"
            )
            return ConferenceResult(
                status=result.outcome,
                query_text=result.query_text,
                candidates=result.matches,
                message=result.message,
            )

        confirmation = self.confirm(result.matches[0])
        return ConferenceResult(
            status=confirmation.status,
            query_text=result.query_text,
            item=confirmation.item,
            event=confirmation.event,
            message=confirmation.message,
        )

    def confirm(self, record: Record) -> ConferenceResult:
        """
        Confirm a specific record (automatic hit or operator selection).

        Returns:
            MATCHED with the new conferred item, or ALREADY_CONSUMED when the
            record was confirmed before
        """
        with self._lock:
            if not self.ledger.reserve(record.ref):
                logger.warning(f"Record {record.ref} already conferred")
                event = self._emit(
                    ConferenceOutcome.ALREADY_CONFERRED,
                    record_ref=record.ref,
                    amount=record.amount,
                )
                return ConferenceResult(
                    status=SearchOutcome.ALREADY_CONSUMED,
                    event=event,
                    message=f"Record {record.ref} was already conferred",
                )

            try:
                item = ConferredItem.create(record)
                self._items[item.conferred_id] = item
            except BaseException:
                self.ledger.release(record.ref)
                raise

            event = self._emit(
                ConferenceOutcome.MATCHED,
                record_ref=record.ref,
                amount=record.amount,
                conferred_id=item.conferred_id,
            )

        logger.info(f"Conferred {record.ref} ({record.amount})")
        return ConferenceResult(
            status=SearchOutcome.MATCHED,
            item=item,
            event=event,
            message=f"Record {record.ref} conferred",
        )

    def remove(self, conferred_id: str) -> Optional[ConferredItem]:
        """
        Undo a confirmation and release its record.

        Returns:
            The removed item, or None if no live item has that id
        """
        with self._lock:
            item = self._items.pop(conferred_id, None)
            if item is None:
                return None
            self.ledger.release(item.record.ref)

        logger.info(f"Removed conference {conferred_id} ({item.record.ref})")
        return item

    def daily_summary(self) -> DailySummary:
        """Counts and values of the session so far."""
        with self._lock:
            items = list(self._items.values())
            events = list(self._events)

        conferred_refs = {item.record.ref for item in items}
        pending = [r for r in self.records if r.ref not in conferred_refs]

        return DailySummary(
            operation_date=self.operation_date,
            total_records=len(self.records),
            conferred_count=len(items),
            conferred_value=sum((item.record.amount for item in items), Decimal("0")),
            pending_count=len(pending),
            pending_value=sum((r.amount for r in pending), Decimal("0")),
            not_found_count=sum(1 for e in events if e.outcome == ConferenceOutcome.NOT_FOUND),
            already_conferred_count=sum(
                1 for e in events if e.outcome == ConferenceOutcome.ALREADY_CONFERRED
            ),
        )

    def _emit(
        self,
        outcome: ConferenceOutcome,
        record_ref: Optional[str] = None,
        query_value: Optional[str] = None,
        amount: Optional[Decimal] = None,
        conferred_id: Optional[str] = None,
    ) -> ConferenceEvent:
        event = ConferenceEvent(
            outcome=outcome,
            record_ref=record_ref,
            query_value=query_value,
            amount=amount,
            conferred_id=conferred_id,
        )
        with self._lock:
            self._events.append(event)

        audit_logger.info(
            f"{outcome.value}: ref={record_ref or '-'} value={query_value or amount}"
        )
        if self.event_sink is not None:
            self.event_sink(event)
        return event
