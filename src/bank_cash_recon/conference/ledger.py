"""Dedup ledger: record refs currently consumed by a confirmed conference."""

from typing import Iterable, Iterator
import logging
import threading

logger = logging.getLogger(__name__)


class DedupLedger:
    """
    Thread-safe set of reserved record refs.

    The ledger does not know why a record was reserved; callers pair
    ``reserve``/``release`` with creating/removing their conferred items.
    Construct one per session (or share one between sessions that must not
    confer the same record twice).
    """

    def __init__(self, reserved: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._reserved: set[str] = set(reserved)

    def reserve(self, record_id: str) -> bool:
        """
        Mark a record as consumed.

        Returns:
            True if this call reserved it, False if it was already reserved
        """
        with self._lock:
            if record_id in self._reserved:
                return False
            self._reserved.add(record_id)
        logger.debug(f"Reserved {record_id}")
        return True

    def release(self, record_id: str) -> None:
        """Return a record to the unmatched pool; unknown ids are ignored."""
        with self._lock:
            self._reserved.discard(record_id)

    def is_reserved(self, record_id: str) -> bool:
        with self._lock:
            return record_id in self._reserved

    def snapshot(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._reserved)

    def __contains__(self, record_id: object) -> bool:
        return isinstance(record_id, str) and self.is_reserved(record_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._reserved)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())
