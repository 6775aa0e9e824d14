"""
PDF text extraction: tenant hints, single-document extraction, batch scheduling.
"""

from spcc_import.pdf_processor.config_resolver import ExtractionConfigResolver
from spcc_import.pdf_processor.extractor import DocumentTextExtractor, create_text_extractor
from spcc_import.pdf_processor.scheduler import BatchExtractionScheduler, create_batch_scheduler

__all__ = [
    "BatchExtractionScheduler",
    "DocumentTextExtractor",
    "ExtractionConfigResolver",
    "create_batch_scheduler",
    "create_text_extractor",
]
