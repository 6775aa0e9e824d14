"""
Loose date parsing for PE stamp dates.

Dates are entered or printed as ``M/D/Y``. Month and day are range-checked
(1-12, 1-31) but not validated against the calendar, so ``CanonicalDate`` is a
plain (year, month, day) tuple rather than ``datetime.date``. Impossible days
such as 02/31 are left for the reviewer to catch.
"""

import re
from typing import List, NamedTuple, Optional

INPUT_DATE_PATTERN = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{4}|\d{2})$")

# Dates printed inside documents may also use dots
TEXT_DATE_PATTERN = re.compile(r"(?<!\d)(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4}|\d{2})(?!\d)")

STAMP_KEYWORD_PATTERN = re.compile(
    r"\bP\.E\.|\b(?:PE|stamp|stamped|certified|professional engineer|seal)\b",
    re.IGNORECASE,
)

DEFAULT_STAMP_DISTANCE = 300


class CanonicalDate(NamedTuple):
    year: int
    month: int
    day: int

    def isoformat(self) -> str:
        """Storage form, ``YYYY-MM-DD``."""
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"


def _build(month: int, day: int, year: int) -> Optional[CanonicalDate]:
    if year < 100:
        year += 2000
    if not 1 <= month <= 12 or not 1 <= day <= 31:
        return None
    return CanonicalDate(year, month, day)


def parse_date(value: Optional[str]) -> Optional[CanonicalDate]:
    """
    Parse ``M/D/YY``, ``MM-DD-YYYY`` and similar into a canonical date.

    Two-digit years are taken as 20xx. Returns None for anything that does not
    parse or has month/day out of range.
    """
    if not value:
        return None
    match = INPUT_DATE_PATTERN.match(value.strip())
    if not match:
        return None
    month, day, year = (int(group) for group in match.groups())
    return _build(month, day, year)


def format_date(value: CanonicalDate) -> str:
    """
    Display form, ``MM/DD/YY``. Never used for storage.

    Years outside 2000-2099 keep all four digits, since a two-digit year
    always reads back as 20xx.
    """
    if 2000 <= value.year <= 2099:
        return f"{value.month:02d}/{value.day:02d}/{value.year % 100:02d}"
    return f"{value.month:02d}/{value.day:02d}/{value.year:04d}"


def normalize_date_input(value: str) -> str:
    """
    Reformat a user-entered date for display, keeping unparseable input as typed.
    """
    parsed = parse_date(value)
    if parsed is None:
        return value
    return format_date(parsed)


def first_date_in(text: Optional[str]) -> Optional[CanonicalDate]:
    """Return the first valid date appearing anywhere in ``text``."""
    if not text:
        return None
    for match in TEXT_DATE_PATTERN.finditer(text):
        month, day, year = (int(group) for group in match.groups())
        parsed = _build(month, day, year)
        if parsed is not None:
            return parsed
    return None


def find_stamp_date(text: Optional[str], max_distance: int = DEFAULT_STAMP_DISTANCE) -> Optional[CanonicalDate]:
    """
    Find the date printed closest to a PE stamp keyword.

    Candidate dates are ranked by character distance to the nearest keyword
    ("PE", "stamped", "seal", ...). The nearest one wins if it is within
    ``max_distance`` characters and has a valid month/day; otherwise None.

    Args:
        text: Full document text
        max_distance: Maximum distance between a keyword and the date

    Returns:
        Canonical date or None
    """
    if not text:
        return None

    keyword_positions: List[int] = [m.start() for m in STAMP_KEYWORD_PATTERN.finditer(text)]
    if not keyword_positions:
        return None

    best: Optional[CanonicalDate] = None
    best_distance: Optional[int] = None

    for match in TEXT_DATE_PATTERN.finditer(text):
        distance = min(abs(match.start() - position) for position in keyword_positions)
        if best_distance is not None and distance >= best_distance:
            continue
        month, day, year = (int(group) for group in match.groups())
        parsed = _build(month, day, year)
        if parsed is None:
            continue
        best, best_distance = parsed, distance

    if best_distance is None or best_distance > max_distance:
        return None
    return best
