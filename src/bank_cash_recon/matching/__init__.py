"""Value search, fuzzy matching and cross-source reconciliation."""

from .engine import ReconciliationEngine, EngineState
from .fuzzy import (
    FuzzyMatch,
    FuzzySearchOptions,
    SmartSearchResult,
    fuzzy_search,
    smart_search,
    generate_search_suggestions,
    highlight_match,
)
from .scoring import MatchTier
from .value_search import ValueSearch, SearchOutcome, SearchResult

__all__ = [
    "ReconciliationEngine",
    "EngineState",
    "FuzzyMatch",
    "FuzzySearchOptions",
    "SmartSearchResult",
    "fuzzy_search",
    "smart_search",
    "generate_search_suggestions",
    "highlight_match",
    "MatchTier",
    "ValueSearch",
    "SearchOutcome",
    "SearchResult",
]
