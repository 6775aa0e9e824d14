"""
Shared fixtures for the import pipeline tests.
"""

import json
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import fitz  # PyMuPDF
import pytest

from spcc_import.config import reset_settings
from spcc_import.models import CandidateEntity, ExtractionResult, ExtractionStatus, RawDocument


@pytest.fixture(autouse=True)
def fresh_settings():
    """Every test starts from settings read from its own environment."""
    reset_settings()
    yield
    reset_settings()


def build_pdf(*pages: Sequence[str], line_height: float = 14.0) -> bytes:
    """Build a PDF with one text line per entry, starting at (72, 72)."""
    doc = fitz.open()
    for lines in pages:
        page = doc.new_page()
        for index, line in enumerate(lines):
            page.insert_text((72, 72 + index * line_height), line, fontsize=11)
    content = doc.tobytes()
    doc.close()
    return content


@pytest.fixture
def pdf_factory() -> Callable[..., RawDocument]:
    """Build a RawDocument holding a real PDF with the given page lines."""

    def factory(name: str, *pages: Sequence[str]) -> RawDocument:
        return RawDocument(name=name, content=build_pdf(*(pages or [[]])))

    return factory


@pytest.fixture
def labeled_pdf() -> bytes:
    """Page with a 'Facility Name:' label and its value two lines below."""
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 100), "Facility Name:", fontsize=11)
    page.insert_text((72, 140), "Riverside Station", fontsize=11)
    page.insert_text((72, 400), "Lakeside Terminal is a neighbouring site.", fontsize=11)
    content = doc.tobytes()
    doc.close()
    return content


@pytest.fixture
def candidates() -> List[CandidateEntity]:
    return [
        CandidateEntity(id="fac-1", name="Riverside Station"),
        CandidateEntity(id="fac-2", name="Lakeside Terminal"),
        CandidateEntity(id="fac-3", name="Hilltop Compressor Site"),
        CandidateEntity(id="fac-4", name="Old Mill Yard", status="sold"),
    ]


def ok_result(name: str, text: str, region_texts: Optional[dict] = None) -> ExtractionResult:
    return ExtractionResult(
        document=RawDocument(name=name, content=b"%PDF-1.7"),
        status=ExtractionStatus.OK,
        text=text,
        page_count=1,
        region_texts=region_texts or {},
    )


@pytest.fixture
def extraction_result() -> Callable[..., ExtractionResult]:
    return ok_result


@pytest.fixture
def facility_file(tmp_path) -> Path:
    """Facility store file for the default tenant."""
    path = tmp_path / "facilities.json"
    path.write_text(
        json.dumps(
            {
                "default": [
                    {"id": "fac-1", "name": "Riverside Station", "status": "active"},
                    {"id": "fac-2", "name": "Lakeside Terminal", "status": "active"},
                    {"id": "fac-4", "name": "Old Mill Yard", "status": "sold"},
                ]
            }
        ),
        encoding="utf-8",
    )
    return path
