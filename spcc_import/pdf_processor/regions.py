"""
Anchor-relative region lookup on PDF pages.

A configured field says "the value sits at this offset from the label
'Facility Name:' on page 1". The label is searched for on the page; when it
cannot be found the position saved in the config is used instead.
Coordinates in the config are page-relative (0-1) with the origin top-left,
which is also PyMuPDF's orientation.
"""

import re
from typing import List, Optional, Sequence, Tuple

import fitz  # PyMuPDF

from spcc_import.models import FieldExtractionConfig

# (x0, y0, x1, y1, word, block_no, line_no, word_no) as returned by get_text("words")
Word = Tuple[float, float, float, float, str, int, int, int]

# Words whose tops differ by more than this (points) are on different lines
SAME_LINE_TOLERANCE = 5.0

MULTI_LINE_HEIGHT_FACTOR = 1.5

_WHITESPACE = re.compile(r"\s+")


def _fold(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip().casefold()


def find_anchor(words: Sequence[Word], page_rect: fitz.Rect, anchor_text: str) -> Optional[Tuple[float, float]]:
    """
    Locate anchor text on a page.

    Adjacent words on the same line are joined so multi-word labels are found.

    Returns:
        Relative (x, y) of the first word of the anchor, or None
    """
    anchor = _fold(anchor_text)
    if not anchor or not words:
        return None

    for i, start in enumerate(words):
        combined = ""
        for j in range(i, len(words)):
            if abs(words[j][1] - start[1]) > SAME_LINE_TOLERANCE:
                break
            combined = f"{combined} {words[j][4]}" if combined else words[j][4]
            if anchor in _fold(combined):
                return start[0] / page_rect.width, start[1] / page_rect.height
    return None


def value_rect(field: FieldExtractionConfig, anchor: Optional[Tuple[float, float]], page_rect: fitz.Rect) -> fitz.Rect:
    """Absolute rectangle holding the field value."""
    base_x, base_y = anchor if anchor is not None else (field.anchor_region.x, field.anchor_region.y)
    height = field.value_size.height
    if field.multi_line:
        height *= MULTI_LINE_HEIGHT_FACTOR

    left = (base_x + field.value_offset.dx) * page_rect.width
    top = (base_y + field.value_offset.dy) * page_rect.height
    return fitz.Rect(left, top, left + field.value_size.width * page_rect.width, top + height * page_rect.height)


def words_in_rect(words: Sequence[Word], rect: fitz.Rect) -> str:
    """Join the words overlapping ``rect``, in reading order."""
    selected: List[str] = [
        word[4]
        for word in words
        if word[0] < rect.x1 and word[2] > rect.x0 and word[1] < rect.y1 and word[3] > rect.y0
    ]
    return " ".join(selected).strip()


def extract_field_text(doc: fitz.Document, field: FieldExtractionConfig) -> str:
    """
    Read the text of one configured field.

    Returns an empty string when the configured page does not exist or the
    region holds no words.
    """
    if field.page > doc.page_count:
        return ""

    page = doc[field.page - 1]
    words = page.get_text("words")
    anchor = find_anchor(words, page.rect, field.anchor_text)
    return words_in_rect(words, value_rect(field, anchor, page.rect))
