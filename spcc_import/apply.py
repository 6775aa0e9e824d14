"""
Apply reviewed rows: store each plan document and point its facility at it.

Rows are processed one at a time. A failing row is recorded and the run moves
on, so one bad document never blocks the rest of the batch.
"""

import time
from typing import Callable, Iterable, Optional

from spcc_import.config import get_settings
from spcc_import.matching.dates import parse_date
from spcc_import.models import ApplyOutcome, ApplyStage, ApplySummary, MatchResult
from spcc_import.review import is_ready
from spcc_import.stores.base import EntityStore, ObjectStorage
from spcc_import.stores.local import create_entity_store, create_object_storage
from spcc_import.utils.errors import SPCCImportError
from spcc_import.utils.logging import get_logger, log_performance

logger = get_logger(__name__)

DEFAULT_ARTIFACT_TYPE = "spcc-plan"

ProgressCallback = Callable[[int, int], None]


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class BatchApplyEngine:
    """
    Two-step apply per row: object storage write, then facility update.

    A storage failure skips the facility update. A facility update failure
    after a successful write leaves an orphaned object; its reference is kept
    on the outcome so it can be reconciled.
    """

    def __init__(
        self,
        storage: ObjectStorage,
        entity_store: EntityStore,
        artifact_type: str = DEFAULT_ARTIFACT_TYPE,
        clock: Callable[[], int] = _epoch_millis,
    ) -> None:
        self.storage = storage
        self.entity_store = entity_store
        self.artifact_type = artifact_type
        self.clock = clock
        self._last_timestamp = 0

    def object_key(self, entity_id: str, extension: str) -> str:
        """``<facility-id>/<artifact>-<epoch-ms>.<ext>``, never reused within a run."""
        timestamp = max(self.clock(), self._last_timestamp + 1)
        self._last_timestamp = timestamp
        return f"{entity_id}/{self.artifact_type}-{timestamp}.{extension}"

    async def apply_row(self, row: MatchResult) -> ApplyOutcome:
        """
        Apply one row.

        Never raises: every failure becomes an unsuccessful outcome.
        """
        outcome = ApplyOutcome(
            row_id=row.row_id,
            document_name=row.document_name,
            entity_id=row.selected_entity_id,
            success=False,
        )

        if not is_ready(row):
            outcome.message = "Row is not ready: a facility and a valid date are required"
            return outcome

        plan_date = parse_date(row.override_date).isoformat()
        key = self.object_key(row.selected_entity_id, row.document.extension)

        try:
            reference = await self.storage.put(
                key, row.document.content, row.document.media_type or "application/pdf"
            )
        except SPCCImportError as e:
            outcome.failed_stage = ApplyStage.STORAGE
            outcome.message = f"Upload failed: {e.message}"
            return outcome
        except Exception as e:
            outcome.failed_stage = ApplyStage.STORAGE
            outcome.message = f"Upload failed: {e}"
            return outcome

        outcome.storage_reference = reference

        try:
            await self.entity_store.update_plan(row.selected_entity_id, reference, plan_date)
        except Exception as e:
            detail = e.message if isinstance(e, SPCCImportError) else str(e)
            outcome.failed_stage = ApplyStage.ENTITY_UPDATE
            outcome.message = f"Facility update failed after upload (orphaned object at {reference}): {detail}"
            logger.warning(
                f"Orphaned stored plan for {row.document_name}",
                extra={"entity_id": row.selected_entity_id, "storage_reference": reference},
            )
            return outcome

        outcome.success = True
        return outcome

    @log_performance
    async def apply(
        self,
        rows: Iterable[MatchResult],
        on_progress: Optional[ProgressCallback] = None,
    ) -> ApplySummary:
        """
        Apply rows sequentially.

        Args:
            rows: Rows to apply, in order
            on_progress: Called with ``(completed, total)`` after every row

        Returns:
            Summary with exactly one outcome per row
        """
        rows = list(rows)
        total = len(rows)
        summary = ApplySummary()

        for index, row in enumerate(rows, start=1):
            outcome = await self.apply_row(row)
            summary.outcomes.append(outcome)

            if not outcome.success:
                logger.warning(
                    f"Failed to apply {row.document_name}: {outcome.message}",
                    extra={"row_id": row.row_id, "failed_stage": outcome.failed_stage},
                )

            if on_progress:
                on_progress(index, total)

        logger.info(f"Applied {summary.succeeded}/{total} plans, {summary.failed} failed")
        return summary


def create_apply_engine(
    storage: Optional[ObjectStorage] = None,
    entity_store: Optional[EntityStore] = None,
) -> BatchApplyEngine:
    settings = get_settings()
    return BatchApplyEngine(
        storage=storage or create_object_storage(),
        entity_store=entity_store or create_entity_store(),
        artifact_type=settings.artifact_type,
    )
