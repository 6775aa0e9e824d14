"""
Batch extraction with bounded concurrency.

Each document is an independent unit of work: one document failing to parse
never stops or skips its siblings.
"""

from typing import Callable, List, Optional, Sequence

from spcc_import.config import get_settings
from spcc_import.models import ExtractionConfig, ExtractionResult, RawDocument
from spcc_import.pdf_processor.extractor import DocumentTextExtractor, create_text_extractor
from spcc_import.utils.concurrency import bounded_map
from spcc_import.utils.logging import get_logger, log_performance

logger = get_logger(__name__)

DEFAULT_CONCURRENCY = 3

ProgressCallback = Callable[[int, int], None]


class BatchExtractionScheduler:
    """Run the text extractor over many documents, a few at a time."""

    def __init__(
        self,
        extractor: Optional[DocumentTextExtractor] = None,
        concurrency_limit: int = DEFAULT_CONCURRENCY,
    ) -> None:
        if concurrency_limit < 1:
            raise ValueError(f"concurrency limit must be at least 1, got {concurrency_limit}")
        self.extractor = extractor or create_text_extractor()
        self.concurrency_limit = concurrency_limit

    @log_performance
    async def run_batch(
        self,
        documents: Sequence[RawDocument],
        config: Optional[ExtractionConfig] = None,
        concurrency_limit: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[ExtractionResult]:
        """
        Extract every document.

        Results come back in completion order; re-key them by document id.
        ``on_progress(completed, total)`` is called after each document.

        Args:
            documents: Accepted documents of the batch
            config: Optional tenant extraction hints, fixed for the whole batch
            concurrency_limit: Override of the scheduler's limit
            on_progress: Optional progress callback

        Returns:
            One extraction result per document
        """
        limit = concurrency_limit if concurrency_limit is not None else self.concurrency_limit
        logger.info(
            f"Extracting {len(documents)} documents",
            extra={"concurrency_limit": limit, "regions_configured": config is not None},
        )

        async def extract_one(document: RawDocument) -> ExtractionResult:
            try:
                return await self.extractor.extract(document, config)
            except Exception as e:
                logger.error(f"Extractor raised for {document.name}: {e}")
                return ExtractionResult.failure(document, f"Failed to parse PDF: {e}")

        results = await bounded_map(documents, extract_one, limit, on_progress)

        failed = sum(1 for result in results if not result.ok)
        if failed:
            logger.warning(f"{failed} of {len(results)} documents could not be read")
        return results


def create_batch_scheduler() -> BatchExtractionScheduler:
    settings = get_settings()
    return BatchExtractionScheduler(
        extractor=create_text_extractor(),
        concurrency_limit=settings.extraction_concurrency,
    )
