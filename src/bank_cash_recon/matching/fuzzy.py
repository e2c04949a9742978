"""
Fuzzy value search with tiered results and search suggestions.

Combines value proximity, description similarity, identifier and date hints
into a confidence score (see ``scoring.fuzzy_confidence``).
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP
from typing import Container, Iterable, Optional, Sequence, Union
import logging
import re

from ..config import SearchConfig, SearchTierSettings
from ..models.record import Record, normalize_identifier, parse_amount, to_money
from ..utils.exceptions import InvalidInputError
from .scoring import (
    DEFAULT_MIN_CONFIDENCE,
    FUZZY_VALUE_WEIGHT,
    IDENTIFIER_TEXT_SIMILARITY,
    MIN_IDENTIFIER_QUERY_DIGITS,
    MIN_TEXT_SIMILARITY,
    TEXT_NUMBER_SIMILARITY,
    TIER_BONUS,
    MatchTier,
    fuzzy_confidence,
)
from .similarity import (
    ONE,
    ZERO,
    extract_numbers,
    normalize_text,
    string_similarity,
    value_similarity,
    within_tolerance,
)

logger = logging.getLogger(__name__)

_DATE_PATTERN_RE = re.compile(r"\d{1,2}/\d{1,2}(?:/\d{2,4})?")

Query = Union[str, Decimal, int, float]


@dataclass(frozen=True)
class FuzzySearchOptions:
    """Options for a single ``fuzzy_search`` pass."""

    # Fractional value tolerance (0.02 = 2%)
    tolerance: Decimal = Decimal("0.02")
    max_results: int = 10
    include_partial_matches: bool = True
    search_in_text: bool = True
    search_in_identifier: bool = False
    min_confidence: Decimal = DEFAULT_MIN_CONFIDENCE

    # Value hits beyond this difference are classified fuzzy, not close
    close_tolerance: Optional[Decimal] = None


@dataclass(frozen=True)
class FuzzyMatch:
    """A ranked fuzzy-search hit."""

    record: Record
    confidence: Decimal
    tier: MatchTier

    # Raw similarity (value + text), secondary sort key
    score: Decimal

    reason: str


@dataclass(frozen=True)
class SmartSearchResult:
    """Disjoint exact / close / fuzzy tiers plus advisory suggestions."""

    exact: tuple[FuzzyMatch, ...]
    close: tuple[FuzzyMatch, ...]
    fuzzy: tuple[FuzzyMatch, ...]
    suggestions: tuple[str, ...]

    @property
    def total(self) -> int:
        return len(self.exact) + len(self.close) + len(self.fuzzy)


def _query_value(query: Query) -> Optional[Decimal]:
    """Magnitude of a query, or None when it is not a number."""
    if isinstance(query, str):
        try:
            return parse_amount(query)
        except InvalidInputError:
            return None
    try:
        return abs(to_money(query))
    except InvalidInputError:
        return None


def _date_matches(date_token: str, record: Record) -> bool:
    formatted = record.date.strftime("%d/%m/%Y")
    return date_token in formatted or formatted[:5] in date_token


def _score_value(
    query_value: Optional[Decimal],
    record: Record,
    options: FuzzySearchOptions,
) -> tuple[Decimal, MatchTier, str]:
    """
    Best value interpretation for a record.

    Every applicable interpretation (close value, number quoted in the
    description) is scored and the strongest kept, so a wider tolerance can
    only add interpretations, never lower a score.
    """
    if query_value is None:
        return ZERO, MatchTier.FUZZY, ""

    item_value = record.magnitude
    if item_value == query_value:
        return ONE, MatchTier.EXACT, "Exact value"

    candidates: list[tuple[Decimal, MatchTier, str]] = []

    if within_tolerance(item_value, query_value, options.tolerance):
        difference = abs(item_value - query_value)
        if options.close_tolerance is None or within_tolerance(
            item_value, query_value, options.close_tolerance
        ):
            tier, label = MatchTier.CLOSE, "Close value"
        else:
            tier, label = MatchTier.FUZZY, "Approximate value"
        candidates.append(
            (
                value_similarity(item_value, query_value),
                tier,
                f"{label} (difference: {difference:.2f})",
            )
        )

    if options.include_partial_matches and record.original_text:
        text_tolerance = options.tolerance * 2
        if any(
            number == query_value or within_tolerance(number, query_value, text_tolerance)
            for number in extract_numbers(record.original_text)
        ):
            candidates.append(
                (TEXT_NUMBER_SIMILARITY, MatchTier.FUZZY, "Value found in description")
            )

    if not candidates:
        return ZERO, MatchTier.FUZZY, ""

    return max(candidates, key=lambda c: c[0] * FUZZY_VALUE_WEIGHT + TIER_BONUS[c[1]])


def fuzzy_search(
    query: Query,
    records: Iterable[Record],
    options: Optional[FuzzySearchOptions] = None,
) -> list[FuzzyMatch]:
    """
    Rank records against a query by confidence.

    Args:
        query: Typed value or text (amount, description fragment, CPF, date)
        records: Records to search
        options: Search options (defaults: 2% tolerance, min confidence 0.3)

    Returns:
        Matches at or above the minimum confidence, sorted by descending
        confidence then raw score; ties keep record order
    """
    opts = options or FuzzySearchOptions()
    return _rank_records(query, records, opts)[: opts.max_results]


def _rank_records(
    query: Query,
    records: Iterable[Record],
    opts: FuzzySearchOptions,
) -> list[FuzzyMatch]:
    """Every qualifying match, sorted but not truncated."""
    query_value = _query_value(query)
    query_text = query.strip() if isinstance(query, str) else None

    lowered = normalize_text(query_text) if query_text else ""
    query_digits = normalize_identifier(query_text) if query_text else None
    date_hit = _DATE_PATTERN_RE.search(query_text) if query_text else None
    date_token = date_hit.group(0) if date_hit else None

    matches: list[FuzzyMatch] = []

    for record in records:
        value_sim, tier, reason = _score_value(query_value, record, opts)

        text_sim = ZERO
        if opts.search_in_text and query_text and len(query_text) > 2:
            similarity = string_similarity(lowered, normalize_text(record.original_text))
            if similarity > MIN_TEXT_SIMILARITY:
                text_sim = similarity
                reason = reason or f"Similar description ({similarity:.0%})"

        has_identifier_match = False
        if (
            opts.search_in_identifier
            and query_digits
            and len(query_digits) >= MIN_IDENTIFIER_QUERY_DIGITS
            and record.identifier
            and query_digits in record.identifier
        ):
            has_identifier_match = True
            text_sim = max(text_sim, IDENTIFIER_TEXT_SIMILARITY)
            reason = reason or "Partial identifier match"

        has_date_match = date_token is not None and _date_matches(date_token, record)
        if has_date_match:
            reason = reason or "Matching date"

        if not (value_sim or text_sim or has_identifier_match or has_date_match):
            continue

        confidence = fuzzy_confidence(
            value_sim, text_sim, tier, has_date_match, has_identifier_match
        )
        if confidence < opts.min_confidence:
            continue

        matches.append(
            FuzzyMatch(
                record=record,
                confidence=confidence,
                tier=tier,
                score=value_sim + text_sim,
                reason=reason,
            )
        )

    # Stable sort keeps the original record order for ties
    matches.sort(key=lambda m: (-m.confidence, -m.score))
    return matches


def _tier_options(
    settings: SearchTierSettings, close_tolerance: Optional[Decimal] = None
) -> FuzzySearchOptions:
    return FuzzySearchOptions(
        tolerance=settings.tolerance,
        max_results=settings.max_results,
        include_partial_matches=settings.include_partial_matches,
        search_in_text=settings.search_in_text,
        search_in_identifier=settings.search_in_identifier,
        min_confidence=settings.min_confidence,
        close_tolerance=close_tolerance,
    )


def _tier_matches(
    query: Query,
    records: Sequence[Record],
    settings: SearchTierSettings,
    tier: MatchTier,
    close_tolerance: Optional[Decimal] = None,
) -> list[FuzzyMatch]:
    """Hits classified in ``tier``, capped after filtering."""
    ranked = _rank_records(query, records, _tier_options(settings, close_tolerance))
    return [m for m in ranked if m.tier == tier][: settings.max_results]


def smart_search(
    query: Query,
    records: Iterable[Record],
    excluded: Optional[Container[str]] = None,
    config: Optional[SearchConfig] = None,
) -> SmartSearchResult:
    """
    Run the exact, close and fuzzy passes and return disjoint tiers.

    Args:
        query: Typed value or text
        records: Records to search
        excluded: Record refs to skip, e.g. a ``DedupLedger``
        config: Tier settings (defaults from ``SearchConfig``)

    Returns:
        SmartSearchResult; each tier keeps only hits classified in that tier,
        and the fuzzy tier also drops anything already in the exact or close
        tier
    """
    settings = config or SearchConfig()
    skip = excluded if excluded is not None else frozenset()
    available = [r for r in records if r.ref not in skip]

    exact = _tier_matches(query, available, settings.exact, MatchTier.EXACT)
    close = _tier_matches(query, available, settings.close, MatchTier.CLOSE)

    taken = {m.record.ref for m in exact} | {m.record.ref for m in close}
    fuzzy = [
        m for m in _tier_matches(
            query, available, settings.fuzzy, MatchTier.FUZZY, settings.close.tolerance
        )
        if m.record.ref not in taken
    ]

    suggestions = generate_search_suggestions(
        query,
        available,
        bands=settings.suggestion_bands,
        max_suggestions=settings.max_suggestions,
        per_band=settings.suggestions_per_band,
    )

    logger.debug(
        f"Smart search {query!r}: {len(exact)} exact, {len(close)} close, "
        f"{len(fuzzy)} fuzzy, {len(suggestions)} suggestions"
    )

    return SmartSearchResult(
        exact=tuple(exact),
        close=tuple(close),
        fuzzy=tuple(fuzzy),
        suggestions=tuple(suggestions),
    )


def generate_search_suggestions(
    query: Query,
    records: Sequence[Record],
    bands: Sequence[Decimal] = (
        Decimal("0.01"),
        Decimal("0.05"),
        Decimal("0.10"),
        Decimal("0.20"),
    ),
    max_suggestions: int = 5,
    per_band: int = 3,
) -> list[str]:
    """
    Suggest nearby values: amounts seen in the data within widening bands,
    then round numbers around the query. Advisory only.
    """
    query_value = _query_value(query)
    if query_value is None or query_value == ZERO:
        return []

    suggestions: list[str] = []
    for band in bands:
        in_band: list[str] = []
        for record in records:
            if len(in_band) >= per_band:
                break
            if within_tolerance(record.magnitude, query_value, band):
                formatted = f"{record.magnitude:.2f}"
                if formatted not in in_band:
                    in_band.append(formatted)
        suggestions.extend(in_band)

    rounded = [
        query_value.quantize(Decimal("1"), rounding=ROUND_HALF_UP),
        query_value.to_integral_value(rounding=ROUND_CEILING),
        query_value.to_integral_value(rounding=ROUND_FLOOR),
        query_value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP),
    ]
    suggestions.extend(f"{value:.2f}" for value in rounded)

    unique = [s for s in dict.fromkeys(suggestions) if Decimal(s) != query_value]
    return unique[:max_suggestions]


def highlight_match(
    text: str,
    term: str,
    markers: tuple[str, str] = ("<mark>", "</mark>"),
) -> str:
    """Wrap case-insensitive occurrences of ``term`` in ``markers``."""
    if not term or len(term) < 2:
        return text
    opening, closing = markers
    pattern = re.compile(re.escape(term), re.IGNORECASE)
    return pattern.sub(lambda m: f"{opening}{m.group(0)}{closing}", text)
