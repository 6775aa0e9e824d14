"""
PDF text extraction using PyMuPDF.

This module reads the text layer of uploaded SPCC plans and, when the tenant
has configured extraction regions, the text found in those regions. Scanned
pages are not OCR'd; a PDF without a text layer simply yields empty text.
"""

import asyncio
from typing import Dict, Optional

import fitz  # PyMuPDF

from spcc_import.config import get_settings
from spcc_import.models import ExtractionConfig, ExtractionResult, ExtractionStatus, RawDocument
from spcc_import.pdf_processor.regions import extract_field_text
from spcc_import.utils.errors import (
    EmptyDocumentError,
    NotAPDFError,
    PDFCorruptedError,
    PDFEncryptedError,
    PDFProcessingError,
)
from spcc_import.utils.logging import get_logger

logger = get_logger(__name__)

# The PDF header may be preceded by junk, but only within the first KB
PDF_HEADER = b"%PDF-"
HEADER_SEARCH_BYTES = 1024

# The title page names the facility; later pages mention neighbours and appendices
DEFAULT_PAGE_LIMIT = 1


class DocumentTextExtractor:
    """Extract plain text (and configured region text) from PDF documents."""

    def __init__(self, page_limit: Optional[int] = DEFAULT_PAGE_LIMIT) -> None:
        """
        Initialize the extractor.

        Args:
            page_limit: Read at most this many pages (default 1, None reads all pages)
        """
        self.page_limit = page_limit

    async def extract(
        self,
        document: RawDocument,
        config: Optional[ExtractionConfig] = None,
    ) -> ExtractionResult:
        """
        Extract text from one document.

        Never raises: unreadable documents come back with status ``error`` and a
        human-readable detail. A valid PDF with no text layer is ``ok`` with empty
        text.

        Args:
            document: Document to read
            config: Optional tenant extraction hints

        Returns:
            Extraction result for the document
        """
        try:
            return await asyncio.to_thread(self._extract_sync, document, config)
        except PDFProcessingError as e:
            logger.warning(
                f"Could not read {document.name}: {e.message}",
                extra={"document_id": document.id},
            )
            return ExtractionResult.failure(document, e.message)
        except Exception as e:
            logger.error(
                f"Unexpected failure reading {document.name}: {e}",
                extra={"document_id": document.id},
            )
            return ExtractionResult.failure(document, f"Failed to parse PDF: {e}")

    def _extract_sync(self, document: RawDocument, config: Optional[ExtractionConfig]) -> ExtractionResult:
        if PDF_HEADER not in document.content[:HEADER_SEARCH_BYTES]:
            raise NotAPDFError(document.name)

        try:
            pdf = fitz.open(stream=document.content, filetype="pdf")
        except (fitz.FileDataError, RuntimeError, ValueError) as e:
            raise PDFCorruptedError(f"PDF file is corrupted: {e}")

        with pdf:
            if pdf.needs_pass:
                raise PDFEncryptedError("PDF is password protected")
            if pdf.page_count == 0:
                raise EmptyDocumentError("PDF contains no pages")

            text = self._extract_text(pdf)
            region_texts = self._extract_regions(pdf, config, document) if config else {}
            page_count = pdf.page_count

        logger.debug(
            f"Extracted {len(text)} characters from {document.name}",
            extra={"document_id": document.id, "page_count": page_count, "regions": list(region_texts)},
        )
        return ExtractionResult(
            document=document,
            status=ExtractionStatus.OK,
            text=text,
            page_count=page_count,
            region_texts=region_texts,
        )

    def _extract_text(self, pdf: fitz.Document) -> str:
        """Join the text of the first ``page_limit`` pages."""
        page_count = pdf.page_count
        if self.page_limit is not None:
            page_count = min(page_count, self.page_limit)
        return "\n".join(pdf[index].get_text() for index in range(page_count)).strip()

    def _extract_regions(
        self,
        pdf: fitz.Document,
        config: ExtractionConfig,
        document: RawDocument,
    ) -> Dict[str, str]:
        """
        Read each configured field region.

        A hint that fails or finds nothing is dropped; the full text remains the
        fallback for matching.
        """
        region_texts: Dict[str, str] = {}
        for name, field in config.fields.items():
            try:
                value = extract_field_text(pdf, field)
            except Exception as e:
                logger.warning(
                    f"Extraction region '{name}' failed for {document.name}: {e}",
                    extra={"document_id": document.id},
                )
                continue

            if value:
                region_texts[name] = value
            else:
                logger.debug(
                    f"Extraction region '{name}' empty for {document.name}, using full text",
                    extra={"document_id": document.id},
                )
        return region_texts


def create_text_extractor() -> DocumentTextExtractor:
    """Create a text extractor instance with settings."""
    settings = get_settings()
    return DocumentTextExtractor(page_limit=settings.extract_page_limit)
