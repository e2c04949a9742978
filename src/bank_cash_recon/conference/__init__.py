"""Conference (confirmation) of typed values and the dedup ledger."""

from .ledger import DedupLedger
from .session import ConferenceSession, ConferenceResult, DailySummary

__all__ = [
    "DedupLedger",
    "ConferenceSession",
    "ConferenceResult",
    "DailySummary",
]
