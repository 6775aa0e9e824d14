"""
Match extracted document text to candidate facilities.

Two tiers:

* exact   - the facility name appears verbatim (case-insensitive) in the text
* partial - a short run of text tokens overlaps the facility name's tokens
            well enough, allowing abbreviations ("Riverside Stn")

Partial matches are only ever suggestions; the review step confirms them.
Everything here is pure: no I/O, same inputs give the same outputs.
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from spcc_import.matching.dates import DEFAULT_STAMP_DISTANCE, find_stamp_date, first_date_in, format_date
from spcc_import.models import (
    FACILITY_NAME_FIELD,
    STAMP_DATE_FIELD,
    CandidateEntity,
    ExtractionResult,
    MatchConfidence,
    MatchResult,
    MatchStatus,
)

DEFAULT_MIN_OVERLAP = 0.6
DEFAULT_MIN_MATCHED_TOKENS = 2
DEFAULT_EXCLUDED_STATUSES = frozenset({"sold", "retired"})

FULL_TOKEN_WEIGHT = 1.0
ABBREVIATION_WEIGHT = 0.75

# Extra text tokens tolerated inside a partial-match window
WINDOW_SLACK = 2

_TOKEN_PATTERN = re.compile(r"[^\W_]+")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class MatchOptions:
    """Tunable matcher constants."""

    min_overlap: float = DEFAULT_MIN_OVERLAP
    min_matched_tokens: int = DEFAULT_MIN_MATCHED_TOKENS
    excluded_statuses: FrozenSet[str] = field(default=DEFAULT_EXCLUDED_STATUSES)
    stamp_date_max_distance: int = DEFAULT_STAMP_DISTANCE

    @classmethod
    def from_settings(cls, settings) -> "MatchOptions":
        return cls(
            min_overlap=settings.match_min_overlap,
            min_matched_tokens=settings.match_min_tokens,
            excluded_statuses=frozenset(s.lower() for s in settings.excluded_entity_statuses),
            stamp_date_max_distance=settings.stamp_date_max_distance,
        )


@dataclass(frozen=True)
class EntityMatch:
    """Selected facility with its justification."""

    entity: Optional[CandidateEntity]
    confidence: MatchConfidence
    fragment: Optional[str] = None


NO_MATCH = EntityMatch(entity=None, confidence=MatchConfidence.NONE)


@dataclass(frozen=True)
class _Token:
    text: str
    start: int
    end: int


@dataclass(frozen=True)
class _PartialHit:
    score: float
    matched_length: int
    fragment: str


def normalize_text(text: str) -> str:
    """Case-fold, trim and collapse whitespace."""
    return _WHITESPACE.sub(" ", text).strip().casefold()


def _tokenize(text: str) -> List[_Token]:
    return [_Token(m.group().casefold(), m.start(), m.end()) for m in _TOKEN_PATTERN.finditer(text)]


def name_tokens(name: str) -> List[str]:
    """Significant tokens of a facility name: longer than two characters, or numeric."""
    return [token.text for token in _tokenize(name) if len(token.text) > 2 or token.text.isdigit()]


def _is_subsequence(short: str, long: str) -> bool:
    remaining = iter(long)
    return all(char in remaining for char in short)


@lru_cache(maxsize=65536)
def token_weight(text_token: str, name_token: str) -> float:
    """
    How well a token from the document stands for a token of a facility name.

    Equal tokens weigh 1.0. An abbreviation ("stn" for "station", "rd" for
    "road") weighs less: it must start with the same letter and its letters must
    appear in order in the name token.
    """
    if text_token == name_token:
        return FULL_TOKEN_WEIGHT
    if (
        len(text_token) >= 2
        and len(text_token) < len(name_token)
        and text_token.isalpha()
        and name_token.isalpha()
        and text_token[0] == name_token[0]
        and _is_subsequence(text_token, name_token)
    ):
        return ABBREVIATION_WEIGHT
    return 0.0


def eligible_candidates(
    candidates: Iterable[CandidateEntity],
    excluded_statuses: FrozenSet[str] = DEFAULT_EXCLUDED_STATUSES,
) -> List[CandidateEntity]:
    """Drop facilities whose status rules them out (sold, retired)."""
    excluded = {status.lower() for status in excluded_statuses}
    return [candidate for candidate in candidates if candidate.status.lower() not in excluded]


def _exact_match(normalized_text: str, candidates: Sequence[CandidateEntity]) -> Tuple[EntityMatch, bool]:
    """
    Returns the exact match (or NO_MATCH) and whether any candidate name
    appeared verbatim at all.
    """
    hits = [
        candidate
        for candidate in candidates
        if normalize_text(candidate.name) and normalize_text(candidate.name) in normalized_text
    ]
    if not hits:
        return NO_MATCH, False

    longest = max(len(normalize_text(candidate.name)) for candidate in hits)
    best = [candidate for candidate in hits if len(normalize_text(candidate.name)) == longest]
    if len({candidate.id for candidate in best}) > 1:
        return NO_MATCH, True

    winner = best[0]
    return EntityMatch(entity=winner, confidence=MatchConfidence.EXACT, fragment=winner.name), True


def _score_window(window: Sequence[_Token], wanted: Sequence[str]) -> Tuple[float, int, int]:
    """
    One-to-one assignment of window tokens to name tokens.

    Verbatim tokens are paired first so an abbreviation never claims a window
    token that a later name token matches in full. The remaining name tokens
    then take their best unused window token in order.

    Returns (total weight, number of matched name tokens, matched name length).
    """
    used = set()
    weights: Dict[int, float] = {}

    for position, name_token in enumerate(wanted):
        for index, token in enumerate(window):
            if index not in used and token.text == name_token:
                used.add(index)
                weights[position] = FULL_TOKEN_WEIGHT
                break

    for position, name_token in enumerate(wanted):
        if position in weights:
            continue
        best_weight = 0.0
        best_index = None
        for index, token in enumerate(window):
            if index in used:
                continue
            weight = token_weight(token.text, name_token)
            if weight > best_weight:
                best_weight, best_index = weight, index
        if best_index is not None:
            used.add(best_index)
            weights[position] = best_weight

    matched_length = sum(len(wanted[position]) for position in weights)
    return sum(weights.values()), len(weights), matched_length


def _partial_hit(
    text: str,
    tokens: Sequence[_Token],
    candidate: CandidateEntity,
    options: MatchOptions,
) -> Optional[_PartialHit]:
    wanted = name_tokens(candidate.name)
    if len(wanted) < options.min_matched_tokens:
        return None

    hit_positions = [
        index
        for index, token in enumerate(tokens)
        if any(token_weight(token.text, name_token) for name_token in wanted)
    ]
    if len(hit_positions) < options.min_matched_tokens:
        return None

    max_span = len(wanted) + WINDOW_SLACK
    best: Optional[Tuple[float, int, int, int]] = None
    best_bounds: Optional[Tuple[int, int]] = None

    for i, start in enumerate(hit_positions):
        for end in hit_positions[i:]:
            if end - start + 1 > max_span:
                break
            total, matched, matched_length = _score_window(tokens[start : end + 1], wanted)
            if matched < options.min_matched_tokens:
                continue
            score = total / len(wanted)
            if score < options.min_overlap:
                continue
            # Higher score, then more of the name covered, then the tighter window
            rank = (score, matched_length, -(end - start), -start)
            if best is None or rank > best:
                best, best_bounds = rank, (start, end)

    if best is None or best_bounds is None:
        return None

    start, end = best_bounds
    fragment = text[tokens[start].start : tokens[end].end]
    return _PartialHit(score=best[0], matched_length=best[1], fragment=fragment)


def _partial_match(text: str, candidates: Sequence[CandidateEntity], options: MatchOptions) -> EntityMatch:
    tokens = _tokenize(text)
    if not tokens:
        return NO_MATCH

    scored: List[Tuple[Tuple[float, int], CandidateEntity, _PartialHit]] = []
    for candidate in candidates:
        hit = _partial_hit(text, tokens, candidate, options)
        if hit is not None:
            scored.append(((round(hit.score, 9), hit.matched_length), candidate, hit))

    if not scored:
        return NO_MATCH

    top_rank = max(rank for rank, _, _ in scored)
    leaders = [(candidate, hit) for rank, candidate, hit in scored if rank == top_rank]
    if len({candidate.id for candidate, _ in leaders}) > 1:
        return NO_MATCH

    candidate, hit = leaders[0]
    return EntityMatch(entity=candidate, confidence=MatchConfidence.PARTIAL, fragment=hit.fragment)


def match_text(
    text: str,
    candidates: Sequence[CandidateEntity],
    options: MatchOptions = MatchOptions(),
) -> EntityMatch:
    """
    Pick the facility a document's text refers to.

    Candidates are expected to be eligible already (see ``eligible_candidates``).
    An exact verbatim hit always wins over partial overlap; when the longest
    verbatim names tie, or the best partial scores tie, nothing is selected.
    """
    normalized = normalize_text(text or "")
    if not normalized:
        return NO_MATCH

    exact, any_verbatim = _exact_match(normalized, candidates)
    if exact.entity is not None or any_verbatim:
        return exact

    return _partial_match(text, candidates, options)


def detect_stamp_date(result: ExtractionResult, options: MatchOptions = MatchOptions()) -> Optional[str]:
    """Stamp date in display form, preferring the configured date region."""
    region_text = result.region_texts.get(STAMP_DATE_FIELD)
    detected = first_date_in(region_text) if region_text else None
    if detected is None:
        detected = find_stamp_date(result.text, options.stamp_date_max_distance)
    return format_date(detected) if detected is not None else None


def match_document(
    result: ExtractionResult,
    candidates: Sequence[CandidateEntity],
    options: MatchOptions = MatchOptions(),
) -> MatchResult:
    """Build the review row for one extraction result."""
    document = result.document
    if not result.ok:
        return MatchResult(
            row_id=document.id,
            document=document,
            status=MatchStatus.ERROR,
            extraction_error=result.error,
        )

    match_source = result.region_texts.get(FACILITY_NAME_FIELD) or result.text
    match = match_text(match_source, candidates, options)
    detected_date = detect_stamp_date(result, options)
    entity_id = match.entity.id if match.entity is not None else None

    return MatchResult(
        row_id=document.id,
        document=document,
        status=MatchStatus.MATCHED if entity_id else MatchStatus.UNMATCHED,
        selected_entity_id=entity_id,
        matched_entity_id=entity_id,
        confidence=match.confidence,
        matched_fragment=match.fragment,
        detected_date=detected_date,
        override_date=detected_date or "",
    )


def match_all(
    extraction_results: Sequence[ExtractionResult],
    candidates: Sequence[CandidateEntity],
    options: MatchOptions = MatchOptions(),
) -> List[MatchResult]:
    """
    Match every extraction result against the candidate facilities.

    Ineligible facilities are filtered out before any scoring, so they can
    never be selected. One row is produced per input result, in input order.

    Args:
        extraction_results: Results from the batch extraction scheduler
        candidates: Facilities supplied by the facility store
        options: Matcher constants

    Returns:
        Review rows, one per extraction result
    """
    eligible = eligible_candidates(candidates, options.excluded_statuses)
    return [match_document(result, eligible, options) for result in extraction_results]
