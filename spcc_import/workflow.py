"""
Import workflow state machine.

    select -> processing -> review -> uploading -> done
                              |
                              +-> select (discard batch)

Select, processing and review can be cancelled. Uploading always runs to
completion, and done is reached even when some rows fail to apply.
"""

from dataclasses import dataclass, field
from typing import Callable, ClassVar, Dict, Iterable, List, Optional, Union
from uuid import uuid4

from spcc_import.apply import BatchApplyEngine, create_apply_engine
from spcc_import.config import get_settings
from spcc_import.matching.matcher import MatchOptions, eligible_candidates, match_all
from spcc_import.models import (
    ApplySummary,
    FileRejection,
    ProgressUpdate,
    RawDocument,
    SelectionResult,
    WorkflowPhase,
)
from spcc_import.pdf_processor.config_resolver import ExtractionConfigResolver
from spcc_import.pdf_processor.scheduler import BatchExtractionScheduler, create_batch_scheduler
from spcc_import.review import ReviewSession
from spcc_import.selection import FileSelector, create_file_selector
from spcc_import.stores.base import EntityStore
from spcc_import.stores.local import create_entity_store, create_tenant_config_store
from spcc_import.utils.errors import InvalidTransitionError
from spcc_import.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

PROGRESS_EXTRACTING = "extracting"
PROGRESS_UPLOADING = "uploading"

ProgressHandler = Callable[[ProgressUpdate], None]


@dataclass
class SelectState:
    """Files picked for the next batch."""

    phase: ClassVar[WorkflowPhase] = WorkflowPhase.SELECT
    accepted: List[RawDocument] = field(default_factory=list)
    rejected: List[FileRejection] = field(default_factory=list)


@dataclass
class ProcessingState:
    """Extraction and matching in flight."""

    phase: ClassVar[WorkflowPhase] = WorkflowPhase.PROCESSING
    batch_id: str
    total: int
    completed: int = 0


@dataclass
class ReviewState:
    phase: ClassVar[WorkflowPhase] = WorkflowPhase.REVIEW
    batch_id: str
    session: ReviewSession


@dataclass
class UploadingState:
    phase: ClassVar[WorkflowPhase] = WorkflowPhase.UPLOADING
    batch_id: str
    total: int
    completed: int = 0


@dataclass
class DoneState:
    phase: ClassVar[WorkflowPhase] = WorkflowPhase.DONE
    summary: ApplySummary


@dataclass
class CancelledState:
    phase: ClassVar[WorkflowPhase] = WorkflowPhase.CANCELLED


WorkflowState = Union[SelectState, ProcessingState, ReviewState, UploadingState, DoneState, CancelledState]


class ImportWorkflow:
    """
    Drive one bulk import batch from file selection to the apply summary.

    The workflow owns the batch state; the extraction scheduler, matcher,
    review session and apply engine do the work of each phase.
    """

    def __init__(
        self,
        entity_store: EntityStore,
        apply_engine: BatchApplyEngine,
        scheduler: Optional[BatchExtractionScheduler] = None,
        config_resolver: Optional[ExtractionConfigResolver] = None,
        selector: Optional[FileSelector] = None,
        tenant_id: str = "default",
        match_options: Optional[MatchOptions] = None,
    ) -> None:
        self.entity_store = entity_store
        self.apply_engine = apply_engine
        self.scheduler = scheduler or create_batch_scheduler()
        self.config_resolver = config_resolver or ExtractionConfigResolver()
        self.selector = selector or FileSelector()
        self.tenant_id = tenant_id
        self.match_options = match_options or MatchOptions()
        self._state: WorkflowState = SelectState()

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def phase(self) -> WorkflowPhase:
        return self._state.phase

    @property
    def session(self) -> Optional[ReviewSession]:
        """The review session while in review, else None."""
        if isinstance(self._state, ReviewState):
            return self._state.session
        return None

    def _require(self, action: str, *phases: WorkflowPhase) -> None:
        if self.phase not in phases:
            raise InvalidTransitionError(action, self.phase.value)

    # ------------------------------------------------------------------
    # select
    # ------------------------------------------------------------------

    def select_files(self, documents: Iterable[RawDocument]) -> SelectionResult:
        """Validate picked files, replacing any earlier selection."""
        self._require("select files", WorkflowPhase.SELECT)
        selection = self.selector.select(documents)
        self._state = SelectState(accepted=list(selection.accepted), rejected=list(selection.rejected))
        return selection

    def remove_file(self, document_id: str) -> None:
        """Drop one accepted file before processing."""
        self._require("remove a file", WorkflowPhase.SELECT)
        self._state.accepted = [doc for doc in self._state.accepted if doc.id != document_id]

    # ------------------------------------------------------------------
    # processing
    # ------------------------------------------------------------------

    async def process(self, on_progress: Optional[ProgressHandler] = None) -> Optional[ReviewSession]:
        """
        Extract and match the accepted files, then enter review.

        Tenant extraction hints and candidate facilities are loaded once at the
        start of the batch. If the workflow is cancelled while extraction runs,
        the results are discarded on arrival and None is returned.

        Args:
            on_progress: Receives a ``ProgressUpdate`` per extracted document

        Returns:
            The review session, or None if the batch was cancelled

        Raises:
            InvalidTransitionError: If not in select or nothing was accepted
            EntityStoreReadError: If the candidate facilities cannot be read;
                the selection is kept so the batch can be retried
        """
        self._require("process files", WorkflowPhase.SELECT)
        selection: SelectState = self._state
        documents = list(selection.accepted)
        if not documents:
            raise InvalidTransitionError("process files", self.phase.value, "no accepted files")

        processing = ProcessingState(batch_id=uuid4().hex[:8], total=len(documents))
        self._state = processing

        def report(completed: int, total: int) -> None:
            processing.completed = completed
            if on_progress and self._state is processing:
                on_progress(ProgressUpdate(completed=completed, total=total, stage=PROGRESS_EXTRACTING))

        with LogContext(batch_id=processing.batch_id, tenant_id=self.tenant_id):
            logger.info(f"Processing batch of {len(documents)} files")
            try:
                config = await self.config_resolver.resolve(self.tenant_id)
                candidates = await self.entity_store.list_candidates(self.tenant_id)
                results = await self.scheduler.run_batch(documents, config, on_progress=report)
            except Exception:
                if self._state is processing:
                    self._state = selection
                raise

            if self._state is not processing:
                logger.info("Batch was cancelled during processing; discarding results")
                return None

            by_id: Dict[str, int] = {doc.id: index for index, doc in enumerate(documents)}
            results.sort(key=lambda result: by_id[result.document_id])
            rows = match_all(results, candidates, self.match_options)
            session = ReviewSession(rows, eligible_candidates(candidates, self.match_options.excluded_statuses))

            summary = session.summary()
            logger.info(
                f"Batch ready for review: {summary.matched} matched ({summary.partial} partial), "
                f"{summary.unmatched} unmatched, {summary.error} errors"
            )

        self._state = ReviewState(batch_id=processing.batch_id, session=session)
        return session

    # ------------------------------------------------------------------
    # review
    # ------------------------------------------------------------------

    def discard_batch(self) -> None:
        """Leave review and start a fresh selection."""
        self._require("discard the batch", WorkflowPhase.REVIEW)
        self._state = SelectState()

    @property
    def can_apply(self) -> bool:
        session = self.session
        return session is not None and bool(session.ready_rows())

    # ------------------------------------------------------------------
    # uploading
    # ------------------------------------------------------------------

    async def apply(self, on_progress: Optional[ProgressHandler] = None) -> ApplySummary:
        """
        Apply every ready row and finish the batch.

        Rows that fail are reported in the summary; they never stop the run.

        Raises:
            InvalidTransitionError: If not in review or no row is ready
        """
        self._require("apply", WorkflowPhase.REVIEW)
        review: ReviewState = self._state
        rows = review.session.ready_rows()
        if not rows:
            raise InvalidTransitionError("apply", self.phase.value, "no rows are ready to apply")

        uploading = UploadingState(batch_id=review.batch_id, total=len(rows))
        self._state = uploading

        def report(completed: int, total: int) -> None:
            uploading.completed = completed
            if on_progress:
                on_progress(ProgressUpdate(completed=completed, total=total, stage=PROGRESS_UPLOADING))

        with LogContext(batch_id=review.batch_id, tenant_id=self.tenant_id):
            summary = await self.apply_engine.apply(rows, on_progress=report)

        self._state = DoneState(summary=summary)
        return summary

    # ------------------------------------------------------------------
    # cancel / restart
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Abandon the batch. Not possible once uploading has started."""
        self._require("cancel", WorkflowPhase.SELECT, WorkflowPhase.PROCESSING, WorkflowPhase.REVIEW)
        logger.info(f"Batch cancelled during {self.phase.value}")
        self._state = CancelledState()

    def new_batch(self) -> None:
        self._require("start a new batch", WorkflowPhase.DONE, WorkflowPhase.CANCELLED)
        self._state = SelectState()


def create_import_workflow(tenant_id: Optional[str] = None) -> ImportWorkflow:
    """Build a workflow wired to the file-backed stores from settings."""
    settings = get_settings()
    entity_store = create_entity_store()
    return ImportWorkflow(
        entity_store=entity_store,
        apply_engine=create_apply_engine(entity_store=entity_store),
        scheduler=create_batch_scheduler(),
        config_resolver=ExtractionConfigResolver(create_tenant_config_store()),
        selector=create_file_selector(),
        tenant_id=tenant_id or settings.tenant_id,
        match_options=MatchOptions.from_settings(settings),
    )
