"""
Validators - Completeness and plausibility checks on a parsed citation.

These run before any network call. A citation that is too sparse to search
is "incomplete"; one that is structurally impossible is "fake".
"""

import re
from datetime import datetime
from typing import Optional

from .reference_extractor import ParsedCitation

MIN_PLAUSIBLE_YEAR = 1400
MIN_REALISTIC_YEAR = 1700
HISTORICAL_CUTOFF_YEAR = 1950

DOI_PATTERN = re.compile(r"^10\.\d{4,9}/[-._;()/:A-Z0-9]+$", re.IGNORECASE)

# Titles too vague to search on: "some paper", "a paper", "study on X", "the thing"
VAGUE_TITLE_PATTERNS = [
    re.compile(r"^(?:some|a few|various)\s", re.IGNORECASE),
    re.compile(r"^(?:a|the|my)\s+paper\b", re.IGNORECASE),
    re.compile(r"^(?:a\s+)?study\s+on(?:\s+\w+)?$", re.IGNORECASE),
    re.compile(r"^the\s+\w+$", re.IGNORECASE),
]

# Placeholder titles used in synthetic inputs
PLACEHOLDER_TITLE_PATTERNS = [
    re.compile(
        r"^(?:(?:a|an|the|my|sample)\s+)?(?:test|example|dummy|fake|placeholder|sample)"
        r"(?:\s+(?:title|paper|article|citation|book|study|reference))?\s*\d*$",
        re.IGNORECASE,
    ),
    re.compile(r"\blorem\s+ipsum\b", re.IGNORECASE),
]


def _current_year(current_year: Optional[int]) -> int:
    return current_year if current_year is not None else datetime.now().year


def is_valid_doi(doi: Optional[str]) -> bool:
    """Check a DOI against the canonical 10.NNNN/suffix shape."""
    return bool(doi) and bool(DOI_PATTERN.match(doi))


def is_valid_isbn(isbn: Optional[str]) -> bool:
    """Validate an ISBN-10 or ISBN-13 checksum."""
    if not isbn:
        return False
    digits = re.sub(r"[-\s]", "", isbn).upper()

    if len(digits) == 10 and re.match(r"^\d{9}[\dX]$", digits):
        total = sum(int(d) * (10 - i) for i, d in enumerate(digits[:9]))
        total += 10 if digits[9] == "X" else int(digits[9])
        return total % 11 == 0

    if len(digits) == 13 and digits.isdigit():
        total = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(digits[:12]))
        return (10 - total % 10) % 10 == int(digits[12])

    return False


def is_valid_year(year: Optional[int], current_year: Optional[int] = None) -> bool:
    """Year within the range a real citation can carry."""
    if not year:
        return False
    return MIN_PLAUSIBLE_YEAR <= year <= _current_year(current_year) + 1


def is_vague_title(title: Optional[str]) -> bool:
    if not title:
        return False
    return any(p.search(title.strip()) for p in VAGUE_TITLE_PATTERNS)


def is_incomplete(parsed: ParsedCitation, current_year: Optional[int] = None) -> bool:
    """
    Decide whether a citation is too sparse to search.

    A DOI alone is always enough. Otherwise two of author / plausible year /
    title are needed, except that a long title with a year can be searched
    without an author.
    """
    if parsed.doi:
        return False

    if is_vague_title(parsed.title):
        return True

    has_author = bool(parsed.author) and len(parsed.author) > 1
    has_year = is_valid_year(parsed.year, current_year)
    has_title = bool(parsed.title) and len(parsed.title) > 3

    if has_title and has_year and len(parsed.title) >= 15:
        return False

    return sum([has_author, has_year, has_title]) < 2


def detect_fake(parsed: ParsedCitation, current_year: Optional[int] = None) -> Optional[str]:
    """
    Return the reason a citation is structurally implausible, or None.

    Future years are always rejected. Very old years and placeholder titles
    are waived when the citation carries a DOI.
    """
    year_now = _current_year(current_year)

    if parsed.year and parsed.year > year_now + 1:
        return f"Future publication year: {parsed.year} (currently {year_now})"

    if parsed.doi:
        return None

    if parsed.year and parsed.year < MIN_REALISTIC_YEAR:
        return f"Unrealistic publication year: {parsed.year}"

    if parsed.title and any(p.search(parsed.title.strip()) for p in PLACEHOLDER_TITLE_PATTERNS):
        return f"Placeholder title: '{parsed.title}'"

    return None


def is_historical_paper(parsed: ParsedCitation) -> bool:
    """Pre-1950 work with author, title and journal; sparsely indexed online."""
    return bool(
        parsed.year
        and parsed.year < HISTORICAL_CUTOFF_YEAR
        and parsed.author
        and parsed.title
        and parsed.journal
    )
