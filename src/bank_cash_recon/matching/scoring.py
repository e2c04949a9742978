"""
Confidence weights and thresholds.

Every constant that feeds a confidence score lives here, as Decimal, so the
same inputs always give the same score.
"""

from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from .similarity import ONE, ZERO

# Scores are reported with four decimal places
CONFIDENCE_QUANTUM = Decimal("0.0001")


class MatchTier(Enum):
    """Strictness band of a single-source search result."""

    EXACT = "exact"
    CLOSE = "close"
    FUZZY = "fuzzy"


# --- Single-source fuzzy search -------------------------------------------

FUZZY_VALUE_WEIGHT = Decimal("0.4")
FUZZY_TEXT_WEIGHT = Decimal("0.2")

TIER_BONUS = {
    MatchTier.EXACT: Decimal("0.3"),
    MatchTier.CLOSE: Decimal("0.15"),
    MatchTier.FUZZY: Decimal("0.05"),
}

DATE_PATTERN_BONUS = Decimal("0.05")
IDENTIFIER_BONUS = Decimal("0.1")

# Value similarity credited when the query appears as a number in the text
TEXT_NUMBER_SIMILARITY = Decimal("0.7")

# Text similarity below this is ignored
MIN_TEXT_SIMILARITY = Decimal("0.3")

# Text similarity credited for a partial identifier hit
IDENTIFIER_TEXT_SIMILARITY = Decimal("0.8")
MIN_IDENTIFIER_QUERY_DIGITS = 3

DEFAULT_MIN_CONFIDENCE = Decimal("0.3")

# --- Cross-source reconciliation ------------------------------------------

RECON_VALUE_WEIGHT = Decimal("0.4")
RECON_VALUE_PARTIAL = Decimal("0.2")

# Value similarity above which a pair still earns partial value credit
RECON_VALUE_FLOOR = Decimal("0.8")

RECON_DATE_EXACT = Decimal("0.3")
RECON_DATE_NEAR = Decimal("0.15")
RECON_IDENTIFIER_EXACT = Decimal("0.2")
RECON_IDENTIFIER_PARTIAL = Decimal("0.1")
RECON_TEXT = Decimal("0.1")
RULE_CONDITION_BONUS = Decimal("0.05")

# Value differences above one currency unit are medium severity
MEDIUM_SEVERITY_VALUE_DIFF = Decimal("1")

CONFIDENCE_BANDS: tuple[tuple[str, Decimal], ...] = (
    ("high", Decimal("0.9")),
    ("medium", Decimal("0.7")),
    ("low", Decimal("0.3")),
)


def cap_confidence(total: Decimal) -> Decimal:
    """Clamp to [0, 1] and quantize."""
    clamped = min(max(total, ZERO), ONE)
    return clamped.quantize(CONFIDENCE_QUANTUM, rounding=ROUND_HALF_UP)


def fuzzy_confidence(
    value_similarity: Decimal,
    text_similarity: Decimal,
    tier: MatchTier,
    has_date_match: bool,
    has_identifier_match: bool,
) -> Decimal:
    """
    Combine the single-source signals into one confidence score.

    value * 0.4 + text * 0.2 + tier bonus (0.3 / 0.15 / 0.05)
    + 0.05 for a date-pattern hit + 0.1 for a partial identifier hit,
    capped at 1.0.
    """
    total = value_similarity * FUZZY_VALUE_WEIGHT + text_similarity * FUZZY_TEXT_WEIGHT
    total += TIER_BONUS[tier]
    if has_date_match:
        total += DATE_PATTERN_BONUS
    if has_identifier_match:
        total += IDENTIFIER_BONUS
    return cap_confidence(total)


def confidence_band(confidence: Decimal) -> Optional[str]:
    """Histogram band for a confidence, or None below the lowest band."""
    for name, lower in CONFIDENCE_BANDS:
        if confidence >= lower:
            return name
    return None
