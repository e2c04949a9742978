"""Bank statement / cash register reconciliation and fuzzy value matching."""

__version__ = "0.1.0"

from .config import ReconConfig, load_config
from .conference import ConferenceSession, DedupLedger
from .matching import ReconciliationEngine, ValueSearch, fuzzy_search, smart_search
from .models import Record, ReconciliationSource, create_reconciliation_source

__all__ = [
    "__version__",
    "ReconConfig",
    "load_config",
    "ConferenceSession",
    "DedupLedger",
    "ReconciliationEngine",
    "ValueSearch",
    "fuzzy_search",
    "smart_search",
    "Record",
    "ReconciliationSource",
    "create_reconciliation_source",
]
