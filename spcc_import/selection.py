"""
Validate picked files before any extraction runs.
"""

from typing import Iterable, Optional, Sequence

from spcc_import.config import get_settings
from spcc_import.models import FileRejection, RawDocument, SelectionResult
from spcc_import.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_FILE_COUNT = 50
DEFAULT_MAX_FILE_SIZE_MB = 10
PDF_MEDIA_TYPE = "application/pdf"


class FileSelector:
    """
    Accept or reject picked files.

    Wrong media type and oversize files are rejected individually. Valid files
    beyond the count ceiling are rejected too, each with the ceiling as reason,
    so nothing is dropped silently. A document picked twice (same id) is kept
    once; the repeat is rejected as already selected.
    """

    def __init__(
        self,
        max_file_count: int = DEFAULT_MAX_FILE_COUNT,
        max_file_size_mb: int = DEFAULT_MAX_FILE_SIZE_MB,
        accepted_media_types: Sequence[str] = (PDF_MEDIA_TYPE,),
    ) -> None:
        self.max_file_count = max_file_count
        self.max_file_size_mb = max_file_size_mb
        self.accepted_media_types = frozenset(accepted_media_types)

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    def check(self, document: RawDocument) -> Optional[str]:
        """Rejection reason for one file, or None when acceptable."""
        if document.media_type not in self.accepted_media_types:
            return "Not a PDF file"
        if document.size_bytes > self.max_file_size_bytes:
            return f"Exceeds {self.max_file_size_mb}MB limit"
        return None

    def select(self, documents: Iterable[RawDocument]) -> SelectionResult:
        result = SelectionResult()
        seen = set()
        for document in documents:
            reason = "Already selected" if document.id in seen else self.check(document)
            if reason is not None:
                result.rejected.append(FileRejection(name=document.name, reason=reason))
            elif len(result.accepted) >= self.max_file_count:
                result.rejected.append(
                    FileRejection(
                        name=document.name,
                        reason=f"Only the first {self.max_file_count} files are accepted per batch",
                    )
                )
            else:
                seen.add(document.id)
                result.accepted.append(document)

        if result.rejected:
            logger.info(
                f"Accepted {len(result.accepted)} files, rejected {len(result.rejected)}",
                extra={"rejected": [str(rejection) for rejection in result.rejected]},
            )
        return result


def create_file_selector() -> FileSelector:
    settings = get_settings()
    return FileSelector(
        max_file_count=settings.max_file_count,
        max_file_size_mb=settings.max_file_size_mb,
        accepted_media_types=settings.accepted_media_types,
    )
