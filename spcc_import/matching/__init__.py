"""
Facility matching and stamp-date normalization.
"""

from spcc_import.matching.dates import CanonicalDate, find_stamp_date, format_date, parse_date
from spcc_import.matching.matcher import MatchOptions, eligible_candidates, match_all, match_text

__all__ = [
    "CanonicalDate",
    "MatchOptions",
    "eligible_candidates",
    "find_stamp_date",
    "format_date",
    "match_all",
    "match_text",
    "parse_date",
]
