"""
String and numeric similarity primitives shared by the fuzzy search and the
reconciliation engine.

All numeric helpers work on Decimal so scores are reproducible.
"""

from decimal import Decimal
import re

ZERO = Decimal("0")
ONE = Decimal("1")

_NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)?")
_WHITESPACE_RE = re.compile(r"\s+")


def edit_distance(s1: str, s2: str) -> int:
    """Levenshtein edit distance."""
    if len(s1) < len(s2):
        return edit_distance(s2, s1)
    if not s2:
        return len(s1)
    prev = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        curr = [i + 1]
        for j, c2 in enumerate(s2):
            cost = 0 if c1 == c2 else 1
            curr.append(min(curr[j] + 1, prev[j + 1] + 1, prev[j] + cost))
        prev = curr
    return prev[-1]


def string_similarity(s1: str, s2: str) -> Decimal:
    """
    Edit-distance similarity in [0, 1].

    The distance is normalized by the length of the longer string; two empty
    strings are identical.
    """
    longer = max(len(s1), len(s2))
    if longer == 0:
        return ONE
    distance = edit_distance(s1, s2)
    return Decimal(longer - distance) / Decimal(longer)


def normalize_text(text: str) -> str:
    """Lowercase and collapse whitespace for text comparison."""
    return _WHITESPACE_RE.sub(" ", text.lower()).strip()


def relative_difference(a: Decimal, b: Decimal) -> Decimal:
    """
    ``|a - b| / max(|a|, |b|)`` as a fraction.

    Two zeros differ by nothing; zero against non-zero differs by 1.
    """
    larger = max(abs(a), abs(b))
    if larger == ZERO:
        return ZERO
    return abs(a - b) / larger


def value_similarity(a: Decimal, b: Decimal) -> Decimal:
    """1 minus the relative difference, floored at 0."""
    return max(ZERO, ONE - relative_difference(a, b))


def within_tolerance(a: Decimal, b: Decimal, tolerance: Decimal) -> bool:
    """Check whether two values differ by at most ``tolerance`` (a fraction)."""
    if a == ZERO and b == ZERO:
        return True
    if a == ZERO or b == ZERO:
        return False
    return relative_difference(a, b) <= tolerance


def extract_numbers(text: str) -> list[Decimal]:
    """Numbers embedded in free text, accepting "," or "." as decimal separator."""
    return [Decimal(match.replace(",", ".")) for match in _NUMBER_RE.findall(text)]


def count_common_digits(d1: str, d2: str) -> int:
    """Positions at which two digit strings agree (tolerates masked identifiers)."""
    return sum(1 for c1, c2 in zip(d1, d2) if c1 == c2)
