"""
Core data models for the SPCC plan bulk import pipeline.

This module defines the Pydantic models that flow between the pipeline
stages: raw documents, extraction results, candidate facilities, review rows
and apply outcomes.
"""

import mimetypes
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Enums
# =============================================================================


class ExtractionStatus(str, Enum):
    """Outcome of reading one document."""

    OK = "ok"
    ERROR = "error"


class MatchStatus(str, Enum):
    """Status of a review row."""

    MATCHED = "matched"
    UNMATCHED = "unmatched"
    ERROR = "error"


class MatchConfidence(str, Enum):
    """How the matcher justifies its selection."""

    EXACT = "exact"
    PARTIAL = "partial"
    NONE = "none"


class ApplyStage(str, Enum):
    """Step of the apply pipeline at which a row failed."""

    STORAGE = "storage"
    ENTITY_UPDATE = "entity_update"


class WorkflowPhase(str, Enum):
    """Phases of the import workflow."""

    SELECT = "select"
    PROCESSING = "processing"
    REVIEW = "review"
    UPLOADING = "uploading"
    DONE = "done"
    CANCELLED = "cancelled"


# Well-known extraction hint names
FACILITY_NAME_FIELD = "facility_name"
STAMP_DATE_FIELD = "pe_stamp_date"


# =============================================================================
# Extraction Config Models
# =============================================================================


class ExtractionRegion(BaseModel):
    """Rectangle in page-relative coordinates (0-1, origin top-left)."""

    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0
    width: float = Field(default=0.0, ge=0.0)
    height: float = Field(default=0.0, ge=0.0)


class RegionOffset(BaseModel):
    model_config = ConfigDict(frozen=True)

    dx: float = 0.0
    dy: float = 0.0


class RegionSize(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: float = Field(default=0.0, ge=0.0)
    height: float = Field(default=0.0, ge=0.0)


class FieldExtractionConfig(BaseModel):
    """Where to find one identifying field, relative to an anchor phrase."""

    model_config = ConfigDict(frozen=True)

    page: int = Field(default=1, ge=1, description="1-indexed page number")
    anchor_text: str = Field(default="", description="Label printed next to the value")
    anchor_region: ExtractionRegion = Field(
        default_factory=ExtractionRegion,
        description="Anchor position used when the anchor text is not found",
    )
    value_offset: RegionOffset = Field(default_factory=RegionOffset)
    value_size: RegionSize = Field(default_factory=RegionSize)
    multi_line: bool = False


class ExtractionConfig(BaseModel):
    """
    Per-tenant extraction hints, keyed by field name.

    Accepts both ``{"fields": {...}}`` and the stored shape where the field
    names are the top-level keys.
    """

    model_config = ConfigDict(frozen=True)

    fields: Dict[str, FieldExtractionConfig] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def wrap_flat_mapping(cls, data: Any) -> Any:
        if isinstance(data, dict) and "fields" not in data:
            return {"fields": data}
        return data

    def get(self, name: str) -> Optional[FieldExtractionConfig]:
        return self.fields.get(name)


# =============================================================================
# Document Models
# =============================================================================


class RawDocument(BaseModel):
    """An input file. The pipeline never mutates it."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()), description="Stable document id")
    name: str = Field(..., min_length=1, description="Original file name")
    content: bytes = Field(default=b"", repr=False)
    size_bytes: int = Field(default=0, ge=0)
    media_type: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def fill_derived_fields(cls, data: Any) -> Any:
        """Default size from the content and media type from the file name."""
        if isinstance(data, dict):
            data = dict(data)
            if not data.get("size_bytes"):
                data["size_bytes"] = len(data.get("content") or b"")
            if not data.get("media_type") and data.get("name"):
                data["media_type"] = mimetypes.guess_type(data["name"])[0]
        return data

    @property
    def extension(self) -> str:
        suffix = Path(self.name).suffix.lstrip(".")
        return suffix.lower() or "pdf"

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "RawDocument":
        """Read a document from disk."""
        path = Path(path)
        return cls(name=path.name, content=path.read_bytes())


class ExtractionResult(BaseModel):
    """Text read from one document, or the reason it could not be read."""

    model_config = ConfigDict(frozen=True)

    document: RawDocument
    status: ExtractionStatus
    text: str = ""
    error: Optional[str] = None
    page_count: int = Field(default=0, ge=0)
    region_texts: Dict[str, str] = Field(
        default_factory=dict,
        description="Text found in configured regions, only for regions that yielded text",
    )

    @model_validator(mode="after")
    def check_error_detail(self) -> "ExtractionResult":
        if self.status == ExtractionStatus.ERROR and not self.error:
            raise ValueError("error results need an error detail")
        return self

    @property
    def document_id(self) -> str:
        return self.document.id

    @property
    def ok(self) -> bool:
        return self.status == ExtractionStatus.OK

    @classmethod
    def failure(cls, document: RawDocument, error: str) -> "ExtractionResult":
        return cls(document=document, status=ExtractionStatus.ERROR, error=error)


# =============================================================================
# Matching Models
# =============================================================================


class CandidateEntity(BaseModel):
    """Projection of a facility record eligible for matching."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    status: str = "active"


class MatchResult(BaseModel):
    """One review row: a document and the facility it should be applied to."""

    row_id: str
    document: RawDocument
    status: MatchStatus
    selected_entity_id: Optional[str] = None
    matched_entity_id: Optional[str] = Field(None, description="Facility picked by the matcher")
    confidence: MatchConfidence = MatchConfidence.NONE
    matched_fragment: Optional[str] = None
    extraction_error: Optional[str] = None
    detected_date: Optional[str] = Field(None, description="Auto-detected stamp date, display form")
    override_date: str = Field("", description="Free-form date entered or detected for apply")

    @model_validator(mode="after")
    def check_error_rows(self) -> "MatchResult":
        if self.status == MatchStatus.ERROR and self.selected_entity_id is not None:
            raise ValueError("error rows cannot select a facility")
        return self

    @property
    def document_name(self) -> str:
        return self.document.name

    @property
    def manually_selected(self) -> bool:
        """A facility other than the matcher's suggestion was picked in review."""
        return self.selected_entity_id is not None and self.selected_entity_id != self.matched_entity_id

    @property
    def effective_confidence(self) -> MatchConfidence:
        """Confidence backing the current selection (none for manual picks)."""
        if self.selected_entity_id is None or self.manually_selected:
            return MatchConfidence.NONE
        return self.confidence


class ReviewSummary(BaseModel):
    """Counts derived from the current review rows."""

    total: int = 0
    matched: int = 0
    partial: int = 0
    unmatched: int = 0
    error: int = 0
    ready: int = 0


# =============================================================================
# Selection Models
# =============================================================================


class FileRejection(BaseModel):
    """A file refused at selection time, with the reason shown to the user."""

    name: str
    reason: str

    def __str__(self) -> str:
        return f"{self.name}: {self.reason}"


class SelectionResult(BaseModel):
    accepted: List[RawDocument] = Field(default_factory=list)
    rejected: List[FileRejection] = Field(default_factory=list)


# =============================================================================
# Apply Models
# =============================================================================


class ApplyOutcome(BaseModel):
    """Result of applying one review row."""

    row_id: str
    document_name: str
    entity_id: Optional[str] = None
    success: bool
    failed_stage: Optional[ApplyStage] = None
    message: Optional[str] = None
    storage_reference: Optional[str] = Field(
        None, description="Stored object reference, kept on failure so orphans can be reconciled"
    )

    @property
    def is_orphan(self) -> bool:
        """Object stored but the facility record does not reference it."""
        return self.failed_stage == ApplyStage.ENTITY_UPDATE and self.storage_reference is not None


class ApplySummary(BaseModel):
    """Aggregate of one apply run. Never persisted."""

    outcomes: List[ApplyOutcome] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failures(self) -> List[ApplyOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def orphaned(self) -> List[ApplyOutcome]:
        return [outcome for outcome in self.outcomes if outcome.is_orphan]

    @property
    def error_messages(self) -> List[str]:
        return [f"{outcome.document_name}: {outcome.message}" for outcome in self.failures]


# =============================================================================
# Progress
# =============================================================================


class ProgressUpdate(BaseModel):
    """Progress tuple reported to the user surface."""

    model_config = ConfigDict(frozen=True)

    completed: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    stage: str

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 1.0
