"""
Human-in-the-loop review of a matched batch.

Rows are keyed by document id, not position, so removing a row never shifts
what another reference points at.
"""

from typing import Any, Dict, Iterable, Iterator, List, Optional

from spcc_import.matching.dates import parse_date
from spcc_import.models import CandidateEntity, MatchConfidence, MatchResult, MatchStatus, ReviewSummary
from spcc_import.utils.errors import ReviewEditError, RowNotFoundError
from spcc_import.utils.logging import get_logger

logger = get_logger(__name__)

EDITABLE_FIELDS = frozenset({"selected_entity_id", "override_date"})


def is_ready(row: MatchResult) -> bool:
    """A row can be applied: facility chosen and a date that normalizes."""
    return (
        row.status != MatchStatus.ERROR
        and row.selected_entity_id is not None
        and parse_date(row.override_date) is not None
    )


class ReviewSession:
    """Mutable row set of the batch under review."""

    def __init__(self, rows: Iterable[MatchResult], candidates: Iterable[CandidateEntity]) -> None:
        self._rows: Dict[str, MatchResult] = {}
        for row in rows:
            if row.row_id in self._rows:
                raise ValueError(f"Duplicate review row id: {row.row_id}")
            self._rows[row.row_id] = row
        self._candidates: Dict[str, CandidateEntity] = {candidate.id: candidate for candidate in candidates}

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[MatchResult]:
        return iter(list(self._rows.values()))

    def __contains__(self, row_id: object) -> bool:
        return row_id in self._rows

    @property
    def rows(self) -> List[MatchResult]:
        return list(self._rows.values())

    @property
    def candidates(self) -> List[CandidateEntity]:
        return list(self._candidates.values())

    def get(self, row_id: str) -> MatchResult:
        try:
            return self._rows[row_id]
        except KeyError:
            raise RowNotFoundError(row_id)

    def entity_name(self, entity_id: Optional[str]) -> Optional[str]:
        if entity_id is None:
            return None
        candidate = self._candidates.get(entity_id)
        return candidate.name if candidate else None

    def update(self, row_id: str, **changes: Any) -> MatchResult:
        """
        Merge edits into one row.

        Only ``selected_entity_id`` and ``override_date`` can be edited.
        Selecting a facility marks the row matched, clearing it marks the row
        unmatched. Rows that failed extraction stay in error: a facility cannot
        be selected for them.

        Args:
            row_id: Document id of the row
            **changes: Field values to merge

        Returns:
            The updated row

        Raises:
            RowNotFoundError: If the row is not part of the session
            ReviewEditError: If the edit is not allowed
        """
        row = self.get(row_id)

        protected = set(changes) - EDITABLE_FIELDS
        if protected:
            raise ReviewEditError(
                f"Field(s) not editable in review: {', '.join(sorted(protected))}",
                {"row_id": row_id},
            )

        updates: Dict[str, Any] = {}

        if "override_date" in changes:
            value = changes["override_date"]
            if value is not None and not isinstance(value, str):
                raise ReviewEditError("Date must be text", {"row_id": row_id})
            updates["override_date"] = value or ""

        if "selected_entity_id" in changes:
            entity_id = changes["selected_entity_id"]
            if row.status == MatchStatus.ERROR:
                if entity_id is not None:
                    raise ReviewEditError(
                        f"{row.document_name} could not be read and cannot be applied",
                        {"row_id": row_id},
                    )
            else:
                if entity_id is not None and entity_id not in self._candidates:
                    raise ReviewEditError(
                        f"Facility '{entity_id}' is not an eligible candidate",
                        {"row_id": row_id, "entity_id": entity_id},
                    )
                updates["selected_entity_id"] = entity_id
                updates["status"] = MatchStatus.MATCHED if entity_id is not None else MatchStatus.UNMATCHED

        updated = row.model_copy(update=updates)
        self._rows[row_id] = updated
        logger.debug(f"Updated review row {row.document_name}", extra={"row_id": row_id, "changes": list(updates)})
        return updated

    def remove(self, row_id: str) -> MatchResult:
        """Drop a row from the batch (e.g. a false positive)."""
        try:
            row = self._rows.pop(row_id)
        except KeyError:
            raise RowNotFoundError(row_id)
        logger.debug(f"Removed review row {row.document_name}", extra={"row_id": row_id})
        return row

    def ready_rows(self) -> List[MatchResult]:
        return [row for row in self._rows.values() if is_ready(row)]

    def summary(self) -> ReviewSummary:
        rows = self._rows.values()
        return ReviewSummary(
            total=len(self._rows),
            matched=sum(1 for row in rows if row.status == MatchStatus.MATCHED),
            partial=sum(
                1
                for row in rows
                if row.status == MatchStatus.MATCHED and row.effective_confidence == MatchConfidence.PARTIAL
            ),
            unmatched=sum(1 for row in rows if row.status == MatchStatus.UNMATCHED),
            error=sum(1 for row in rows if row.status == MatchStatus.ERROR),
            ready=sum(1 for row in rows if is_ready(row)),
        )
