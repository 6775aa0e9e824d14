"""
Custom exceptions for the SPCC plan bulk import pipeline.

Adapters (storage, facility store, tenant config store) and the extractor
internals raise these. Pipeline stages catch them at their own boundary and
turn them into typed results, so callers of the batch operations only ever
see ExtractionResult / ApplyOutcome values.
"""

from typing import Any, Optional


class SPCCImportError(Exception):
    """Base exception for all import pipeline errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        #: Human-readable text, safe to show in a failure list.
        self.message = message
        #: Identifiers (file name, key, facility id) for log records.
        self.details = dict(details or {})

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{key}={value}" for key, value in self.details.items())
        return f"{self.message} ({context})"


# -- PDF Processing --


class PDFProcessingError(SPCCImportError):
    """Base exception for PDF processing errors."""


class NotAPDFError(PDFProcessingError):
    """Input bytes are not a PDF document."""

    def __init__(self, filename: str) -> None:
        super().__init__("Not a PDF document", {"filename": filename})


class PDFCorruptedError(PDFProcessingError):
    """PDF file is corrupted or invalid."""


class PDFEncryptedError(PDFProcessingError):
    """PDF is password protected and its text cannot be read."""


class EmptyDocumentError(PDFProcessingError):
    """PDF parsed but contains no pages."""


# -- External Store --


class StoreError(SPCCImportError):
    """Base exception for external store operations."""


class StorageWriteError(StoreError):
    """Writing a document to object storage failed."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Storage write failed for '{key}': {reason}", {"key": key})


class EntityUpdateError(StoreError):
    """Updating the facility record failed."""

    def __init__(self, entity_id: str, reason: str) -> None:
        super().__init__(
            f"Facility update failed for '{entity_id}': {reason}",
            {"entity_id": entity_id},
        )


class EntityStoreReadError(StoreError):
    """Reading candidate facilities failed."""


# -- Configuration --


class ConfigurationError(SPCCImportError):
    """Configuration error."""


class InvalidExtractionConfigError(ConfigurationError):
    """Tenant extraction config record could not be validated."""

    def __init__(self, tenant_id: str, reason: str) -> None:
        message = f"Extraction config for tenant '{tenant_id}' is invalid: {reason}"
        super().__init__(message, {"tenant_id": tenant_id})


# -- Workflow --


class WorkflowError(SPCCImportError):
    """Base exception for import workflow errors."""


class InvalidTransitionError(WorkflowError):
    """Action not allowed in the current workflow phase."""

    def __init__(self, action: str, phase: str, reason: Optional[str] = None) -> None:
        message = f"Cannot {action} while in '{phase}' phase"
        if reason:
            message += f": {reason}"
        super().__init__(message, {"action": action, "phase": phase})


# -- Review --


class ReviewError(SPCCImportError):
    """Base exception for review session edits."""


class RowNotFoundError(ReviewError):
    """Review row does not exist (removed or never part of the batch)."""

    def __init__(self, row_id: str) -> None:
        super().__init__(f"Review row '{row_id}' not found", {"row_id": row_id})


class ReviewEditError(ReviewError):
    """Edit rejected by the review session."""

